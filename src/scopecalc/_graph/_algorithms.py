"""Graph algorithms for line dependency graphs."""

from collections.abc import Collection, Hashable, Mapping


def detect_cycle[T: Hashable](successors: Mapping[T, Collection[T]]) -> tuple[T, T] | None:
    """Find one back edge of a directed graph.

    Runs a depth-first search that keeps the current recursion stack.
    Nodes are visited in mapping order and neighbours in collection order,
    so the result is deterministic.

    Args:
        successors: Mapping from node to the nodes it points to.

    Returns:
        ``(ancestor, current)`` for the first edge ``current -> ancestor`` whose
        target is still on the stack, or ``None`` if the graph is acyclic.

    Example:
        >>> detect_cycle({0: [1], 1: [0]})
        (0, 1)
        >>> detect_cycle({0: [1], 1: []}) is None
        True

    """
    visited: set[T] = set()
    on_stack: set[T] = set()

    for root in successors:
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        # Explicit stack of (node, iterator over its neighbours).
        stack = [(root, iter(successors.get(root, ())))]
        while stack:
            node, neighbours = stack[-1]
            for neighbour in neighbours:
                if neighbour in on_stack:
                    return (neighbour, node)
                if neighbour not in visited:
                    visited.add(neighbour)
                    on_stack.add(neighbour)
                    stack.append((neighbour, iter(successors.get(neighbour, ()))))
                    break
            else:
                on_stack.discard(node)
                stack.pop()

    return None


def find_cycle_through[T: Hashable](successors: Mapping[T, Collection[T]], start: T) -> list[T] | None:
    """Find a cycle that starts and ends at *start*.

    Returns:
        The nodes of the cycle in edge order, beginning with *start* (the
        closing edge back to *start* is implied), or ``None``.

    Example:
        >>> find_cycle_through({0: [1], 1: [2], 2: [0]}, 1)
        [1, 2, 0]

    """
    parents: dict[T, T] = {}
    stack = [start]
    seen: set[T] = {start}

    while stack:
        node = stack.pop()
        for neighbour in successors.get(node, ()):
            if neighbour == start:
                path = [node]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                path.reverse()
                return path
            if neighbour not in seen:
                seen.add(neighbour)
                parents[neighbour] = node
                stack.append(neighbour)

    return None
