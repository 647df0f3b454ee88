"""Trip Budget Example for scopecalc.

This example demonstrates:
- A workspace with two scopes that share one function module
- Line bindings, bare expressions and module calls
- Automatic re-evaluation when a module changes
- Persisting to a JSON store directory and exporting results to TOML

Run it with:
    python examples/trip_budget.py
"""

from pathlib import Path

import scopecalc as sc

STORE_DIR = Path(__file__).parent / ".trip-store"

workspace = sc.Workspace(store=sc.JsonDirectoryStore(STORE_DIR))

# -----------------------------------------------------------------------------
# Function module (shared by every scope)
# -----------------------------------------------------------------------------

money = workspace.add_module("money")
workspace.update_module(
    money.id,
    """
// Currency helpers
function split(total, people) {
  return people > 0 ? total / people : 0;
}

function share(part, whole) {
  return @money.split(part * 100, whole);
}
""",
)
workspace.save_module(money.id)

# -----------------------------------------------------------------------------
# Scopes
# -----------------------------------------------------------------------------

travel = workspace.create_scope("Travel")
for text in [
    "train = 2 * 89.5",
    "hotel_nights = 3",
    "hotel = hotel_nights * 120",
    "total = train + hotel",
    "@money.split(total, 3)",
]:
    workspace.add_line(travel.id, text)
workspace.delete_line(travel.id, 0)  # drop the initial blank line

food = workspace.create_scope("Food")
workspace.update_line(food.id, 0, "per_day = 45")
workspace.add_line(food.id, "days = 3")
workspace.add_line(food.id, "total = per_day * days")
workspace.add_line(food.id, "total > 100 ? 'over budget' : 'ok'")

for scope in workspace.scopes:
    print(f"[{scope.name}]")
    for line in scope.lines:
        result = line.error if line.error is not None else line.value
        print(f"  {line.index + 1:>2}  {line.raw_expression:<40} {result}")

sc.export_to_toml(workspace.scopes, STORE_DIR / "results.toml")
