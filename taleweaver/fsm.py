from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from taleweaver.errors import InvalidViewError, TransitionNotAllowedError
from taleweaver.models import GameState, View


_VIEW_VALUES = frozenset(v.value for v in View)


class SessionFSM(StateMachine):
    """FSM wrapper around GameState.view.

    - setup: welcome -> connection -> genre -> character -> scenario -> chat
    - chat loops onto itself, one turn per `advance`.
    - `back` reverses setup steps only; chat has no defined predecessor.

    The engine does the work of each step; the FSM only guards transitions.
    """

    welcome = State(View.welcome.value, value=View.welcome.value, initial=True)
    connection = State(View.connection.value, value=View.connection.value)
    genre = State(View.genre.value, value=View.genre.value)
    character = State(View.character.value, value=View.character.value)
    scenario = State(View.scenario.value, value=View.scenario.value)
    chat = State(View.chat.value, value=View.chat.value)

    advance = (
        welcome.to(connection)
        | connection.to(genre)
        | genre.to(character)
        | character.to(scenario)
        | scenario.to(chat)
        | chat.to.itself()
    )
    back = connection.to(welcome) | genre.to(connection) | character.to(genre) | scenario.to(character)

    def __init__(self, game: GameState):
        view = str(getattr(game.view, "value", game.view))
        if view not in _VIEW_VALUES:
            raise InvalidViewError(f"Invalid value for view: {view!r}")
        self.game = game
        super().__init__(start_value=view)

    @property
    def view(self) -> View:
        return View(str(self.current_state.value))

    def step_back(self) -> None:
        try:
            self.back()
        except TransitionNotAllowed as e:
            raise TransitionNotAllowedError(f"Cannot go back from '{self.view.value}'") from e
        self.sync_view_to_model()

    def sync_view_to_model(self) -> None:
        self.game.view = self.view
