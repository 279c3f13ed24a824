import doctest

import pytest

from graphopt.ir import GraphBuilder, GraphValidationError, OpKind, TensorType, from_model_dict


SIMPLE_MLP = {
    "name": "SimpleMLP",
    "nodes": [
        {"name": "x", "op": "Input", "tensor_type": {"dtype": "float32", "shape": [1, 784]}},
        {"name": "w1", "op": "Constant", "tensor_type": {"dtype": "float32", "shape": [784, 128]}},
        {"name": "b1", "op": "Constant", "tensor_type": {"dtype": "float32", "shape": [1, 128]}},
        {"name": "h", "op": "MatMul", "inputs": ["x", "w1"]},
        {"name": "hb", "op": "Add", "inputs": ["h", "b1"]},
        {"name": "act", "op": "ReLU", "inputs": ["hb"]},
    ],
    "outputs": ["act"],
}


def test_builder_assigns_ports_and_edges() -> None:
    b = GraphBuilder("g")
    x = b.input("x", (1, 4))
    w = b.constant("w", (4, 2))
    mm = b.matmul(x, w)
    out = b.output(mm)
    g = b.build()

    node = g.nodes[mm]
    assert node.name == "matmul1"
    assert [p.name for p in node.inputs] == ["input_0", "input_1"]
    assert [p.name for p in node.outputs] == ["output"]

    sink = g.nodes[out]
    assert sink.op is OpKind.OUTPUT
    assert sink.name == "output_matmul1"
    assert len(sink.inputs) == 1
    assert sink.outputs == ()

    assert g.nodes[x].output_type == TensorType("float32", (1, 4))
    assert [(e.source.node_id, e.target.index) for e in g.input_edges(mm)] == [(x, 0), (w, 1)]
    g.validate()


def test_builder_rejects_bad_arity() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    with pytest.raises(GraphValidationError, match="expects 2..2 inputs, got 1"):
        b.op(OpKind.ADD, x)


def test_builder_rejects_unknown_kind_and_source() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    with pytest.raises(GraphValidationError, match="Unknown operator kind"):
        b.op("Frobnicate", x)
    with pytest.raises(GraphValidationError, match="Unknown source node"):
        b.relu("n_999")


def test_builder_drops_unset_attributes() -> None:
    b = GraphBuilder()
    x = b.input("x", (1, 3, 8, 8))
    conv = b.conv2d(x, kernel=5)
    attrs = b.build().nodes[conv].attrs
    assert "filters" not in attrs
    assert attrs == {"kernel": 5, "stride": 1, "padding": 0}


def test_from_model_dict() -> None:
    g = from_model_dict(SIMPLE_MLP)
    assert g.name == "SimpleMLP"
    names = [n.name for n in g.nodes.values()]
    assert names == ["x", "w1", "b1", "h", "hb", "act", "output_act"]
    by_id = {n.id: n.name for n in g.nodes.values()}
    pairs = {(by_id[e.source.node_id], by_id[e.target.node_id]) for e in g.edges}
    assert pairs == {
        ("x", "h"),
        ("w1", "h"),
        ("h", "hb"),
        ("b1", "hb"),
        ("hb", "act"),
        ("act", "output_act"),
    }
    assert len(g.edges) == 6
    g.validate()


def test_from_model_dict_allows_forward_references() -> None:
    model = {
        "nodes": [
            {"name": "r", "op": "ReLU", "inputs": ["x"]},
            {"name": "x", "op": "Input", "tensor_type": {"shape": [2]}},
        ],
        "outputs": ["r"],
    }
    g = from_model_dict(model)
    assert [n.name for n in g.topological_sort()] == ["x", "r", "output_r"]


def test_from_model_dict_errors() -> None:
    with pytest.raises(GraphValidationError, match="unknown node 'nope'"):
        from_model_dict({"nodes": [{"name": "r", "op": "ReLU", "inputs": ["nope"]}]})

    with pytest.raises(GraphValidationError, match="Duplicate node name"):
        from_model_dict({"nodes": [{"name": "x", "op": "Input"}, {"name": "x", "op": "Input"}]})

    with pytest.raises(GraphValidationError, match="expects 1..1 inputs, got 0"):
        from_model_dict({"nodes": [{"name": "r", "op": "ReLU"}]})


def test_docstring_example_runs() -> None:
    from graphopt.ir import builder

    results = doctest.testmod(builder)
    assert results.attempted > 0
    assert results.failed == 0
