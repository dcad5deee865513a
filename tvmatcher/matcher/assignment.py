"""Minimum-cost bipartite assignment (Kuhn-Munkres / Hungarian algorithm)."""

import math
from collections.abc import Sequence

# Cost of the cells added to make a rectangular input square
BIG_COST = 1.0e9


def _validate(cost: Sequence[Sequence[float]], width: int) -> None:
    for i, row in enumerate(cost):
        if len(row) != width:
            raise ValueError(f"Cost matrix row {i} has {len(row)} columns, expected {width}")
        for j, value in enumerate(row):
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"Cost matrix cell ({i}, {j}) must be finite and >= 0, got {value}")


def hungarian(cost: Sequence[Sequence[float]]) -> list[int]:
    """Solve the assignment problem for an ``n x m`` cost matrix.

    Uses row/column potentials with shortest augmenting paths, O(size^3) where
    ``size = max(n, m)``. Rectangular input is padded with ``BIG_COST``.

    Args:
        cost: Non-negative finite costs, one row per worker.

    Returns:
        A list of length ``n``: the column assigned to each row, or -1 when
        the row could only be given a padding column (possible when n > m).
        Empty when the matrix has no rows or no columns.

    Raises:
        ValueError: If rows are ragged or a cost is negative or not finite.
    """
    n = len(cost)
    if n == 0:
        return []
    m = len(cost[0])
    if m == 0:
        return []
    _validate(cost, m)

    size = max(n, m)
    a = [[BIG_COST] * size for _ in range(size)]
    for i, row in enumerate(cost):
        for j, value in enumerate(row):
            a[i][j] = float(value)

    # 1-indexed potentials; column 0 is the virtual start of each augmenting path
    u = [0.0] * (size + 1)
    v = [0.0] * (size + 1)
    p = [0] * (size + 1)  # p[j] = row matched to column j
    way = [0] * (size + 1)

    for i in range(1, size + 1):
        p[0] = i
        j0 = 0
        minv = [math.inf] * (size + 1)
        used = [False] * (size + 1)

        while True:
            used[j0] = True
            i0 = p[j0]
            delta = math.inf
            j1 = 0
            for j in range(1, size + 1):
                if used[j]:
                    continue
                cur = a[i0 - 1][j - 1] - u[i0] - v[j]
                if cur < minv[j]:
                    minv[j] = cur
                    way[j] = j0
                if minv[j] < delta:
                    delta = minv[j]
                    j1 = j

            for j in range(size + 1):
                if used[j]:
                    u[p[j]] += delta
                    v[j] -= delta
                else:
                    minv[j] -= delta

            j0 = j1
            if p[j0] == 0:
                break

        # Flip the augmenting path
        while True:
            j1 = way[j0]
            p[j0] = p[j1]
            j0 = j1
            if j0 == 0:
                break

    assignment = [-1] * size
    for j in range(1, size + 1):
        if p[j] != 0:
            assignment[p[j] - 1] = j - 1

    return [col if col < m else -1 for col in assignment[:n]]


def assignment_cost(cost: Sequence[Sequence[float]], assignment: Sequence[int]) -> float:
    """Total cost of an assignment, ignoring unassigned (-1) rows."""
    return sum(cost[row][col] for row, col in enumerate(assignment) if col >= 0)
