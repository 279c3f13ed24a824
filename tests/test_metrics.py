from graphopt.analysis import (
    GraphMetrics,
    compute_metrics,
    compute_metrics_many,
    format_bytes,
    format_flops,
)
from graphopt.ir import GraphBuilder
from graphopt.passes import FusionPass, infer_shapes


def _mlp(typed: bool = True):
    b = GraphBuilder("mlp")
    x = b.input("x", (1, 784))
    w = b.constant("w", (784, 128))
    b.output(b.relu(b.matmul(x, w)))
    g = b.build()
    return infer_shapes(g) if typed else g


def test_metrics_of_typed_mlp() -> None:
    m = compute_metrics(_mlp())

    assert m.node_count == 5
    assert m.edge_count == 4
    assert m.op_counts == {"Input": 1, "Constant": 1, "MatMul": 1, "ReLU": 1, "Output": 1}
    assert m.total_flops == 128 * 784 * 2 + 128
    assert m.total_params == 784 * 128 + 128
    # x + w + matmul + relu output tensors, float32
    assert m.total_memory_bytes == (784 + 784 * 128 + 128 + 128) * 4
    assert m.depth == 3


def test_counts_match_graph_sizes() -> None:
    for g in (_mlp(), FusionPass().run(_mlp()), _mlp(typed=False)):
        m = compute_metrics(g)
        assert m.node_count == len(g.nodes)
        assert m.edge_count == len(g.edges)
        assert sum(m.op_counts.values()) == len(g.nodes)


def test_untyped_graph_costs_nothing() -> None:
    m = compute_metrics(_mlp(typed=False))
    assert m.total_flops == 0
    assert m.total_memory_bytes == 784 * 4 + 784 * 128 * 4
    # Parameter formulas fall back to 1 for unknown dimensions.
    assert m.total_params == 1 * 1 + 1


def test_depth_counts_longest_chain() -> None:
    b = GraphBuilder()
    x = b.input("x", (4,))
    short = b.relu(x)
    long = b.gelu(b.relu(b.relu(x)))
    b.output(b.add(short, long))
    assert compute_metrics(b.build()).depth == 5


def test_empty_graph() -> None:
    m = compute_metrics(GraphBuilder().build())
    assert m == GraphMetrics(node_count=0, edge_count=0)


def test_metrics_many_matches_sequential() -> None:
    graphs = [_mlp(), _mlp(typed=False), FusionPass().run(_mlp())]
    assert compute_metrics_many(graphs, max_workers=2) == [compute_metrics(g) for g in graphs]
    assert compute_metrics_many([]) == []


def test_format_flops() -> None:
    assert format_flops(999) == "999"
    assert format_flops(1500) == "1.5K"
    assert format_flops(2_500_000) == "2.5M"
    assert format_flops(3_000_000_000) == "3.0G"
    assert format_flops(1_500_000_000_000) == "1.50T"


def test_format_bytes() -> None:
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(1024 * 1024) == "1.0 MB"
    assert format_bytes(3 * 1024**3) == "3.00 GB"


def test_metrics_format() -> None:
    text = compute_metrics(_mlp()).format()
    assert "FLOPs:  200.8K" in text
    assert "Ops:    Constant=1, Input=1, MatMul=1, Output=1, ReLU=1" in text
