"""Example usage of SearchControl from a terminal."""

import logging
import sys
from pathlib import Path

# Add src to path so we can import transitsearch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitsearch import SearchControl, SearchControlOptions, CorpusLoadError
from transitsearch.models import Role

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_suggestions(control: SearchControl, role: Role):
    """Print the open suggestion rows for a role, numbering the selectable ones."""
    rows = control.suggestions[role].rows
    if not rows:
        print("  No matches")
        return
    for row in rows:
        if row.selectable:
            sub = f"  ({row.sublabel})" if row.sublabel else ""
            print(f"  [{row.option_index}] {row.label}{sub}")
        else:
            print(f"  -- {row.label} --")


def print_itinerary(control: SearchControl):
    """Print the route summary and its steps."""
    itinerary = control.itinerary
    if itinerary is None:
        print(f"No route ({control.status})")
        return

    print(f"\n{itinerary.summary_from} → {itinerary.summary_to}   {itinerary.total_text}")
    print("-" * 70)
    for step in itinerary.steps:
        if step.kind == "node":
            rank = f" [{step.rank_label}]" if step.rank_label else ""
            print(f"● {step.label}{rank}")
        else:
            print(f"│   {step.line or step.mode} ({step.mode}) • {step.cost_text}")
    print()


def pick(control: SearchControl, role: Role) -> bool:
    """Ask for a query and a row number until a location is chosen."""
    while True:
        query = input(f"Search {role.value} (or 'quit'): ").strip()
        if query.lower() in ["quit", "q", "exit"]:
            return False
        control.search(role, query)
        print_suggestions(control, role)
        if not control.suggestions[role].options:
            continue
        choice = input("Pick a number (Enter for the first): ").strip()
        index = int(choice) if choice.isdigit() else 0
        if control.choose(role, index) is not None:
            return True
        print("That location is already selected for the other role")


def interactive_mode(api_base: str = None):
    """
    Run in interactive mode, picking a start and a destination repeatedly.
    """
    print("TransitSearch - Interactive Mode")
    print("(Type 'quit' to exit)\n")

    try:
        control = SearchControl(options=SearchControlOptions(api_base=api_base))
    except CorpusLoadError as e:
        print(f"Error loading locations: {e}")
        sys.exit(1)
    print(control.status)

    try:
        while pick(control, Role.START) and pick(control, Role.DESTINATION):
            print_itinerary(control)
            control.clear()
    except KeyboardInterrupt:
        pass
    print("\nGoodbye!")


if __name__ == "__main__":
    interactive_mode(sys.argv[1] if len(sys.argv) > 1 else None)
