"""Start/destination selection state and active-role bookkeeping."""

import logging
from typing import Any, Callable, List, Optional, Union

from .corpus_loader import CorpusLoader
from .models import Location, Role, Selection

logger = logging.getLogger(__name__)

DEFAULT_CLICK_TOLERANCE = 0.006  # degrees

ChangeListener = Callable[[Role, Optional[Location]], None]
FocusListener = Callable[[Optional[Role]], None]


class SelectionStateMachine:
    """
    Owns the two selection slots.

    Typed search, map clicks and programmatic calls all funnel through set_role,
    which refuses to put the same location id in both slots.
    """

    def __init__(self, corpus: CorpusLoader, click_tolerance: float = DEFAULT_CLICK_TOLERANCE):
        self.corpus = corpus
        self.click_tolerance = click_tolerance
        self.selection = Selection()
        self.active_role: Optional[Role] = None
        self._change_listeners: List[ChangeListener] = []
        self._focus_listeners: List[FocusListener] = []

    def on_change(self, listener: ChangeListener) -> None:
        """Register a callback run with (role, location) after every slot change."""
        self._change_listeners.append(listener)

    def on_focus(self, listener: FocusListener) -> None:
        """Register a callback run with the newly active role, or None."""
        self._focus_listeners.append(listener)

    def get(self, role: Role) -> Optional[Location]:
        """Location held by a slot, or None."""
        return self.selection.get(role)

    def set_role(self, role: Role, location: Optional[Location]) -> bool:
        """
        Fill or clear a slot.

        Returns:
            False when the location is already held by the other slot.
        """
        role = Role(role)
        if location is not None:
            other = self.selection.get(role.other)
            if other is not None and other.id == location.id:
                logger.debug(f"Rejected {location.id} for {role.value}: already the {role.other.value}")
                return False

        self.selection.set(role, location)
        if location is not None:
            logger.info(f"Set {role.value} to {location.id} ({location.display_name})")
        for listener in self._change_listeners:
            listener(role, location)
        return True

    def clear(self, role: Optional[Role] = None) -> None:
        """Clear one slot, or both when no role is given."""
        roles = [Role(role)] if role is not None else [Role.START, Role.DESTINATION]
        for each in roles:
            self.set_role(each, None)

    def resolve(self, value: Union[Location, str, int, None]) -> Optional[Location]:
        """Accept a Location as-is, or look up an identifier in the corpus."""
        if value is None or isinstance(value, Location):
            return value
        return self.corpus.find(value)

    def select(self, role: Role, value: Any) -> bool:
        """Programmatic entry point taking a Location, an id, or None to clear."""
        role = Role(role)
        if value is None or value == "":
            return self.set_role(role, None)
        location = self.resolve(value)
        if location is None:
            logger.warning(f"No location with id {value!r}; {role.value} unchanged")
            return False
        return self.set_role(role, location)

    # Focus bookkeeping

    def activate(self, role: Optional[Role]) -> None:
        """Make a role the active one; activating one role deactivates the other."""
        self.active_role = Role(role) if role is not None else None
        for listener in self._focus_listeners:
            listener(self.active_role)

    def deactivate(self) -> None:
        """Clear the active role."""
        self.activate(None)

    def advance_focus(self, role: Role) -> None:
        """After filling role, move to the other role if it is empty, else clear focus."""
        other = Role(role).other
        if self.selection.get(other) is None:
            self.activate(other)
        else:
            self.deactivate()

    def hit_test(self, lon: float, lat: float) -> Optional[Location]:
        """Nearest corpus location within the click tolerance."""
        return self.corpus.nearest(lon, lat, self.click_tolerance)

    def click(self, lon: float, lat: float) -> Optional[Location]:
        """
        Handle a click on the map surface.

        Ignored without an active role. A miss, or a hit on the location held by the
        other role, keeps the active role focused for another try.

        Returns:
            The location that was selected, or None.
        """
        role = self.active_role
        if role is None:
            return None

        location = self.hit_test(lon, lat)
        if location is None:
            logger.debug(f"No location within {self.click_tolerance} of ({lon}, {lat})")
            self.activate(role)
            return None

        if not self.set_role(role, location):
            self.activate(role)
            return None
        return location
