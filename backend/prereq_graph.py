"""
Prerequisite graph checks over a catalog snapshot.

Edges run from a course to every id its prerequisite expression or
alternative groups name. Cycles and dangling references are reported, never
repaired: a corrupt catalog must be fixed at the source.
"""

from eligibility import prereq_expression_satisfied, referenced_prereq_ids
from errors import PrerequisiteGraphError

_WHITE, _GRAY, _BLACK = 0, 1, 2


def build_prereq_edges(catalog: dict, restrict_to: set | None = None) -> dict[str, list[str]]:
    """course id -> sorted prereq ids that are themselves catalog courses."""
    nodes = set(catalog) if restrict_to is None else set(restrict_to) & set(catalog)
    edges: dict[str, list[str]] = {}
    for course_id in sorted(nodes):
        refs = referenced_prereq_ids(catalog[course_id])
        edges[course_id] = sorted(r for r in refs if r in nodes)
    return edges


def _canonical_cycle(cycle: list[str]) -> tuple[str, ...]:
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


def find_cycles(edges: dict[str, list[str]]) -> list[list[str]]:
    """
    Depth-first search with a recursion stack; every back edge yields one
    cycle. Cycles are rotated to start at their smallest id and deduplicated,
    so the output is deterministic.
    """
    color: dict[str, int] = {}
    stack: list[str] = []
    seen: set[tuple[str, ...]] = set()
    cycles: list[list[str]] = []

    def visit(node: str) -> None:
        color[node] = _GRAY
        stack.append(node)
        for nxt in edges.get(node, []):
            state = color.get(nxt, _WHITE)
            if state == _GRAY:
                key = _canonical_cycle(stack[stack.index(nxt):])
                if key not in seen:
                    seen.add(key)
                    cycles.append(list(key))
            elif state == _WHITE:
                visit(nxt)
        stack.pop()
        color[node] = _BLACK

    for node in sorted(edges):
        if color.get(node, _WHITE) == _WHITE:
            visit(node)
    return cycles


def validate_graph(catalog: dict) -> list[dict]:
    """
    Report every prerequisite cycle in the catalog.

    Each report:
      {"kind": "cycle", "courses": ["CS 201", "CS 301"], "path": "CS 201 -> CS 301 -> CS 201"}

    An acyclic catalog yields [].
    """
    reports = []
    for cycle in find_cycles(build_prereq_edges(catalog)):
        reports.append({
            "kind": "cycle",
            "courses": cycle,
            "path": " -> ".join(cycle + [cycle[0]]),
        })
    return reports


def find_dangling_prereqs(catalog: dict, satisfied: set | None = None) -> dict[str, list[str]]:
    """
    course id -> referenced prereq ids that are neither catalog courses nor in
    `satisfied` (e.g. transfer credit the student already holds).
    """
    satisfied = satisfied or set()
    out: dict[str, list[str]] = {}
    for course_id in sorted(catalog):
        missing = [
            ref for ref in referenced_prereq_ids(catalog[course_id])
            if ref not in catalog and ref not in satisfied
        ]
        if missing:
            out[course_id] = missing
    return out


def prereq_closure(catalog: dict, roots) -> set[str]:
    """Roots plus every catalog course reachable through prerequisite edges."""
    seen: set[str] = set()
    frontier = [r for r in roots if r in catalog]
    while frontier:
        course_id = frontier.pop()
        if course_id in seen:
            continue
        seen.add(course_id)
        for ref in referenced_prereq_ids(catalog[course_id]):
            if ref in catalog and ref not in seen:
                frontier.append(ref)
    return seen


def assert_plannable(catalog: dict, targets, satisfied: set) -> None:
    """
    Raise PrerequisiteGraphError when the prerequisite closure of `targets`
    holds a cycle, or a dangling reference that leaves a course unsatisfiable
    even if every catalog course were taken.
    """
    closure = prereq_closure(catalog, targets)
    cycles = find_cycles(build_prereq_edges(catalog, restrict_to=closure))

    reachable_ids = set(catalog) | set(satisfied)
    dangling = {}
    for course_id, missing in find_dangling_prereqs(
        {cid: catalog[cid] for cid in closure}, satisfied
    ).items():
        if not prereq_expression_satisfied(catalog[course_id], reachable_ids):
            dangling[course_id] = missing

    if cycles or dangling:
        raise PrerequisiteGraphError(cycles=cycles, dangling=dangling)


def topological_layers(catalog: dict, targets, satisfied: set) -> dict[str, int]:
    """
    Earliest term offset (0-based) at which each target could be taken.

    A prerequisite already satisfied, or outside the targets, costs nothing;
    a target prerequisite costs its own layer plus one. AND takes the
    deepest member, OR and alternative groups take the cheapest option, and
    choose-n takes the n-th cheapest member.
    Raises PrerequisiteGraphError on a cycle among the targets.
    """
    target_set = {t for t in targets if t in catalog}
    edges = {
        t: [p for p in deps if p not in satisfied]
        for t, deps in build_prereq_edges(catalog, restrict_to=target_set).items()
    }
    cycles = find_cycles(edges)
    if cycles:
        raise PrerequisiteGraphError(cycles=cycles)

    memo: dict[str, int] = {}

    def _cost(member) -> int:
        if isinstance(member, dict):
            return _expression_cost(member)
        if member in satisfied or member not in target_set:
            return 0
        return _layer(member) + 1

    def _expression_cost(expr: dict) -> int:
        kind = expr.get("type")
        if kind == "single":
            return _cost(expr["course"])
        costs = sorted(_cost(m) for m in expr.get("courses", []))
        if not costs:
            return 0
        if kind == "and":
            return costs[-1]
        if kind == "or":
            return costs[0]
        if kind == "choose_n":
            return costs[min(expr["count"], len(costs)) - 1]
        return 0

    def _layer(course_id: str) -> int:
        if course_id not in memo:
            course = catalog[course_id]
            options = [_expression_cost(g) for g in course.alternatives]
            if course.prereqs.get("type", "none") != "none" or not options:
                options.append(_expression_cost(course.prereqs))
            memo[course_id] = min(options)
        return memo[course_id]

    for course_id in sorted(target_set):
        _layer(course_id)
    return memo
