import numpy as np
import pytest

from graphopt.ir import (
    Edge,
    ElementType,
    GraphBuilder,
    GraphValidationError,
    Node,
    OpKind,
    PortRef,
    TensorType,
    create_graph,
    gen_id,
    reset_id_counter,
)
from graphopt.ir.builder import make_node


def _chain(n: int):
    b = GraphBuilder("chain")
    x = b.input("x", (1, 8))
    for _ in range(n):
        x = b.relu(x)
    b.output(x)
    return b.build()


def test_tensor_type_sizes() -> None:
    t = TensorType(ElementType.FLOAT32, (1, 3, 8, 8))
    assert t.rank == 4
    assert t.numel == 192
    assert t.nbytes == 768
    assert str(t) == "Tensor<float32>[1, 3, 8, 8]"

    assert TensorType("int8", (4, 4)).nbytes == 16
    assert TensorType("float16", ()).numel == 1


def test_tensor_type_rejects_negative_dims() -> None:
    with pytest.raises(ValueError):
        TensorType(ElementType.FLOAT32, (1, -3))


def test_gen_id_is_monotonic_and_resettable() -> None:
    assert gen_id("n") == "n_1"
    assert gen_id("e") == "e_2"
    reset_id_counter()
    assert gen_id("g") == "g_1"


def test_attrs_are_frozen_to_the_variant() -> None:
    node = Node(
        id="n_1",
        op=OpKind.TRANSPOSE,
        name="t",
        attrs={"perm": [0, 2, 1], "scale": np.float32(0.5), "axis": np.int64(1)},
    )
    assert node.attrs == {"perm": (0, 2, 1), "scale": 0.5, "axis": 1}
    assert isinstance(node.attrs["axis"], int)

    with pytest.raises(TypeError):
        Node(id="n_2", op=OpKind.RELU, name="bad", attrs={"fn": object()})


def test_graph_is_immutable_across_edits() -> None:
    g0 = create_graph("g")
    node = make_node(OpKind.INPUT, "x", 0, tensor_type=TensorType("float32", (2,)))
    g1 = g0.add_node(node)

    assert len(g0.nodes) == 0
    assert g1.nodes[node.id] is node
    assert g1.id == g0.id

    with pytest.raises(GraphValidationError):
        g1.add_node(node)


def test_remove_node_drops_incident_edges() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    r = b.relu(x)
    b.output(r)
    g = b.build()

    pruned = g.remove_node(r)
    assert r not in pruned.nodes
    assert all(r not in (e.source.node_id, e.target.node_id) for e in pruned.edges)
    assert len(pruned.edges) == 0
    assert len(g.edges) == 2


def test_producers_and_consumers() -> None:
    b = GraphBuilder()
    x = b.input("x", (2, 2))
    w = b.constant("w", (2, 2))
    mm = b.matmul(x, w, name="mm")
    b.output(mm)
    g = b.build()

    assert [n.name for n in g.producers(mm)] == ["x", "w"]
    assert [n.name for n in g.consumers(mm)] == ["output_mm"]
    assert [n.name for n in g.consumers(x)] == ["mm"]


def test_topological_order_respects_every_edge() -> None:
    b = GraphBuilder()
    x = b.input("x", (1, 4))
    w = b.constant("w", (4, 4))
    a = b.relu(x)
    c = b.matmul(a, w)
    d = b.add(c, a)
    b.output(d)
    g = b.build()

    position = {n.id: i for i, n in enumerate(g.topological_sort())}
    assert len(position) == len(g.nodes)
    for edge in g.edges:
        assert position[edge.source.node_id] < position[edge.target.node_id]


def test_topological_sort_handles_deep_chains() -> None:
    g = _chain(3000)
    order = g.topological_sort()
    assert len(order) == 3002
    assert order[0].op is OpKind.INPUT
    assert order[-1].op is OpKind.OUTPUT


def test_validate_rejects_dangling_edges() -> None:
    g = _chain(1)
    bad = g.add_edge(Edge("e_bad", PortRef("missing"), PortRef(next(iter(g.nodes)), 0)))
    with pytest.raises(GraphValidationError, match="unknown source node missing"):
        bad.validate()


def test_validate_rejects_port_out_of_range() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    r = b.relu(x)
    g = b.build()
    bad = g.add_edge(Edge("e_bad", PortRef(x), PortRef(r, 3)))
    with pytest.raises(GraphValidationError, match="no input port 3"):
        bad.validate()


def test_validate_reports_cycles_by_name() -> None:
    b = GraphBuilder("loop")
    x = b.input("x", (4,))
    a = b.add(x, x, name="a")
    r = b.relu(a, name="r")
    g = b.build()

    # Feed r back into a as its second operand.
    second = [e for e in g.input_edges(a) if e.target.index == 1][0]
    cyclic = g.remove_edge(second.id).add_edge(Edge("e_back", PortRef(r), PortRef(a, 1)))

    with pytest.raises(GraphValidationError, match="has a cycle: r -> a -> r"):
        cyclic.validate()


def test_record_pass_appends_history() -> None:
    g = create_graph("g").record_pass("P", "desc", 12.5)
    assert len(g.metadata.pass_history) == 1
    record = g.metadata.pass_history[0]
    assert (record.name, record.description, record.timestamp) == ("P", "desc", 12.5)


def test_summary_lists_nodes_in_order() -> None:
    g = _chain(1)
    text = g.summary()
    assert text.splitlines()[0] == "Graph(name='chain', nodes=3, edges=2)"
    assert "- relu1: ReLU(x)" in text
