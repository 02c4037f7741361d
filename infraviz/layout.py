"""
Layered top-to-bottom DAG layout.

Ranks are longest-path distances from the roots, rank order is refined by
barycenter sweeps and every node gets a fixed-size box. Same nodes and
edges in the same order always give the same coordinates.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx

NODE_WIDTH = 180
NODE_HEIGHT = 80
NODE_SEP = 80
RANK_SEP = 120


def find_back_edges(graph: nx.DiGraph) -> Set[Tuple[str, str]]:
    """Edges that close a cycle when walking depth-first in insertion order."""
    state: Dict[str, int] = {}  # 1 = on stack, 2 = finished
    back_edges = set()

    for start in graph.nodes:
        if start in state:
            continue
        state[start] = 1
        stack = [(start, iter(graph.successors(start)))]
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                state[node] = 2
                stack.pop()
            elif state.get(child) == 1:
                back_edges.add((node, child))
            elif child not in state:
                state[child] = 1
                stack.append((child, iter(graph.successors(child))))

    return back_edges


class LayeredLayout:
    def __init__(
        self,
        node_width: float = NODE_WIDTH,
        node_height: float = NODE_HEIGHT,
        node_sep: float = NODE_SEP,
        rank_sep: float = RANK_SEP,
        sweeps: int = 4,
    ):
        self.node_width = node_width
        self.node_height = node_height
        self.node_sep = node_sep
        self.rank_sep = rank_sep
        self.sweeps = sweeps

    def build_graph(self, node_ids: Iterable[str], edges: Iterable[Tuple[str, str]]) -> nx.DiGraph:
        graph = nx.DiGraph()
        graph.add_nodes_from(node_ids)
        for source, target in edges:
            if source == target or source not in graph or target not in graph:
                continue
            graph.add_edge(source, target)
        graph.remove_edges_from(list(find_back_edges(graph)))
        return graph

    def assign_ranks(self, graph: nx.DiGraph) -> Dict[str, int]:
        ranks: Dict[str, int] = {}
        for node in nx.topological_sort(graph):
            preds = [ranks[p] for p in graph.predecessors(node)]
            ranks[node] = max(preds) + 1 if preds else 0
        return ranks

    def order_layers(self, graph: nx.DiGraph, ranks: Dict[str, int]) -> List[List[str]]:
        insertion = {node: i for i, node in enumerate(graph.nodes)}
        layers: List[List[str]] = [[] for _ in range(max(ranks.values(), default=-1) + 1)]
        for node in graph.nodes:
            layers[ranks[node]].append(node)

        best = [list(layer) for layer in layers]
        best_crossings = self.count_crossings(graph, best)

        for sweep in range(self.sweeps):
            downward = sweep % 2 == 0
            order = range(1, len(layers)) if downward else range(len(layers) - 2, -1, -1)
            for r in order:
                neighbours = graph.predecessors if downward else graph.successors
                fixed = layers[r - 1] if downward else layers[r + 1]
                layers[r] = self._sort_by_barycenter(layers[r], fixed, neighbours, insertion)

            crossings = self.count_crossings(graph, layers)
            if crossings < best_crossings:
                best = [list(layer) for layer in layers]
                best_crossings = crossings

        return best

    @staticmethod
    def _sort_by_barycenter(layer, fixed, neighbours, insertion) -> List[str]:
        fixed_pos = {node: i for i, node in enumerate(fixed)}
        keyed = []
        for i, node in enumerate(layer):
            positions = [fixed_pos[n] for n in neighbours(node) if n in fixed_pos]
            barycenter = sum(positions) / len(positions) if positions else float(i)
            keyed.append((barycenter, insertion[node], node))
        keyed.sort()
        return [node for _, _, node in keyed]

    @staticmethod
    def count_crossings(graph: nx.DiGraph, layers: List[List[str]]) -> int:
        """Crossings between edges joining the same pair of adjacent ranks."""
        crossings = 0
        for upper, lower in zip(layers, layers[1:]):
            upper_pos = {node: i for i, node in enumerate(upper)}
            lower_pos = {node: i for i, node in enumerate(lower)}
            segments = [
                (upper_pos[u], lower_pos[v])
                for u in upper
                for v in graph.successors(u)
                if v in lower_pos
            ]
            for i, (a1, b1) in enumerate(segments):
                for a2, b2 in segments[i + 1:]:
                    if (a1 - a2) * (b1 - b2) < 0:
                        crossings += 1
        return crossings

    def compute(self, node_ids: Iterable[str], edges: Iterable[Tuple[str, str]]) -> Dict[str, Tuple[float, float]]:
        """Returns the center point of every node."""
        graph = self.build_graph(node_ids, edges)
        if graph.number_of_nodes() == 0:
            return {}

        layers = self.order_layers(graph, self.assign_ranks(graph))
        widths = [len(layer) * self.node_width + max(len(layer) - 1, 0) * self.node_sep for layer in layers]
        max_width = max(widths)

        centers: Dict[str, Tuple[float, float]] = {}
        for rank, layer in enumerate(layers):
            offset = (max_width - widths[rank]) / 2
            y = rank * (self.node_height + self.rank_sep) + self.node_height / 2
            for i, node in enumerate(layer):
                x = offset + i * (self.node_width + self.node_sep) + self.node_width / 2
                centers[node] = (x, y)
        return centers

    def top_left(self, center: Optional[Tuple[float, float]]) -> Tuple[float, float]:
        x, y = center if center is not None else (0.0, 0.0)
        return x - self.node_width / 2, y - self.node_height / 2
