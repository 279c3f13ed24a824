from graphopt.ir import GraphBuilder, OpKind
from graphopt.passes import DeadCodeEliminationPass, eliminate_dead_code


def _graph_with_dead_branch():
    b = GraphBuilder("dead")
    x = b.input("x", (1, 16))
    live = b.relu(x, name="live")
    dead = b.gelu(x, name="dead")
    b.softmax(dead, name="dead_too")
    b.output(live)
    return b.build(), dead


def test_removes_nodes_not_reaching_an_output() -> None:
    g, dead = _graph_with_dead_branch()
    out = DeadCodeEliminationPass().run(g)

    assert sorted(n.name for n in out.nodes.values()) == ["live", "output_live", "x"]
    assert dead not in out.nodes
    assert len(out.edges) == 2
    out.validate()


def test_dce_is_idempotent() -> None:
    g, _ = _graph_with_dead_branch()
    once = eliminate_dead_code(g)
    twice = eliminate_dead_code(once)
    assert twice == once


def test_graph_without_outputs_becomes_empty() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    b.relu(x)
    g = eliminate_dead_code(b.build())
    assert g.nodes == {}
    assert g.edges == ()


def test_unused_inputs_are_dropped() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    b.input("unused", (4,))
    b.output(x)
    g = eliminate_dead_code(b.build())
    assert [n.op for n in g.nodes.values()] == [OpKind.INPUT, OpKind.OUTPUT]
