from graphopt.analysis import compute_metrics
from graphopt.ir import GraphBuilder, OpKind, TensorType
from graphopt.passes import ShapeInferencePass, default_passes, infer_shapes, run_pipeline


def _t(*shape: int) -> TensorType:
    return TensorType("float32", shape)


def test_conv_chain_infers_output_shape() -> None:
    b = GraphBuilder("conv")
    x = b.input("x", (1, 3, 8, 8))
    conv = b.conv2d(x, filters=4, kernel=3, padding=1)
    b.output(conv)

    g = ShapeInferencePass().run(b.build())

    assert g.nodes[conv].output_type == _t(1, 4, 8, 8)
    assert g.nodes[conv].inputs[0].tensor_type == _t(1, 3, 8, 8)
    edge = g.output_edges(conv)[0]
    assert edge.tensor_type == _t(1, 4, 8, 8)


def test_mlp_shapes_propagate() -> None:
    b = GraphBuilder("mlp")
    x = b.input("x", (1, 784))
    w1 = b.constant("w1", (784, 128))
    h = b.relu(b.matmul(x, w1))
    w2 = b.constant("w2", (128, 10))
    logits = b.softmax(b.matmul(h, w2))
    b.output(logits)

    g = infer_shapes(b.build())

    assert g.nodes[h].output_type == _t(1, 128)
    assert g.nodes[logits].output_type == _t(1, 10)
    assert all(e.tensor_type is not None for e in g.edges)


def test_untyped_weight_passes_left_operand_through() -> None:
    b = GraphBuilder()
    x = b.input("x", (1, 784))
    w = b.constant("w")  # no declared type
    mm = b.matmul(x, w)
    bias = b.constant("b")
    r = b.relu(b.add(mm, bias))
    b.output(r)

    g = infer_shapes(b.build())

    assert g.nodes[mm].output_type == _t(1, 784)
    assert g.nodes[mm].inputs[1].tensor_type is None
    assert g.nodes[r].output_type == _t(1, 784)
    assert compute_metrics(g).total_flops > 0


def test_untyped_first_operand_defers_node() -> None:
    b = GraphBuilder()
    w = b.constant("w")
    x = b.input("x", (2, 4))
    mm = b.matmul(w, x)
    cat = b.op(OpKind.CONCAT, x, w)
    b.output(mm)
    b.output(cat)

    g = infer_shapes(b.build())

    assert g.nodes[mm].output_type is None
    assert g.nodes[mm].inputs[1].tensor_type == _t(2, 4)
    assert g.nodes[cat].output_type == _t(2, 4)


def test_reshape_with_unknown_dim_runs_through_pipeline() -> None:
    b = GraphBuilder()
    x = b.input("x", (2, 3, 4))
    flat = b.op(OpKind.RESHAPE, x, shape=(2, -1))
    bad = b.op(OpKind.RESHAPE, x, shape=(5, -1))
    b.output(flat)
    b.output(bad)

    final = run_pipeline(b.build(), default_passes())[-1].graph

    assert final.nodes[flat].output_type == _t(2, 12)
    assert final.nodes[bad].output_type is None


def test_source_nodes_keep_declared_type() -> None:
    b = GraphBuilder()
    x = b.input("x", (5,), dtype="int32")
    b.output(x)
    g = infer_shapes(b.build())
    assert g.nodes[x].output_type == TensorType("int32", (5,))


def test_inference_is_pure() -> None:
    b = GraphBuilder()
    x = b.input("x", (1, 3, 8, 8))
    conv = b.conv2d(x, filters=2)
    b.output(conv)
    before = b.build()

    after = infer_shapes(before)

    assert before.nodes[conv].output_type is None
    assert after.nodes[conv].output_type == _t(1, 2, 6, 6)
    assert after.nodes[x] == before.nodes[x]


def test_every_output_port_of_split_is_typed() -> None:
    b = GraphBuilder()
    x = b.input("x", (8, 4))
    s = b.op(OpKind.SPLIT, x)
    b.output((s, 2))
    g = infer_shapes(b.build())
    assert [p.tensor_type for p in g.nodes[s].outputs] == [_t(8, 4)] * 4
