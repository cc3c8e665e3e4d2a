import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from syft_serde.errors import SecurityActionError
from syft_serde.spec.scope import permission_set

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    MARSHAL = "marshal"
    UNMARSHAL = "unmarshal"


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class Abort:
    reason: str


ActionResult = Union[Continue, Abort]

# (value, direction, context) -> Continue() | Abort(reason)
# On unmarshal the value is the destination model type.
SecurityAction = Callable[[Any, Direction, "SecurityContext"], ActionResult]


@dataclass(frozen=True)
class RegisteredAction:
    name: str
    action: SecurityAction
    model_type: type | None = None
    direction: Direction | None = None

    def applies_to(self, model_type: type, direction: Direction) -> bool:
        if self.direction is not None and self.direction != direction:
            return False
        if self.model_type is not None and not issubclass(model_type, self.model_type):
            return False
        return True


class SecurityActions:
    """Ordered pre-flight checks, keyed by model type and direction.

    A registration without a model type or direction matches every call.
    Checks run in registration order.
    """

    def __init__(self, actions: Iterable[RegisteredAction] = ()):
        self._actions: list[RegisteredAction] = list(actions)

    def register(
        self,
        action: SecurityAction,
        model_type: type | None = None,
        direction: Direction | str | None = None,
        name: str | None = None,
    ) -> SecurityAction:
        if direction is not None:
            direction = Direction(direction)
        self._actions.append(
            RegisteredAction(
                name=name or getattr(action, "__name__", repr(action)),
                action=action,
                model_type=model_type,
                direction=direction,
            )
        )
        return action

    def for_call(self, model_type: type, direction: Direction) -> list[RegisteredAction]:
        return [a for a in self._actions if a.applies_to(model_type, direction)]

    def __len__(self) -> int:
        return len(self._actions)


@dataclass(frozen=True)
class SecurityContext:
    """Everything one secure call needs. Not retained after the call."""

    permissions: frozenset[str] = frozenset()
    user_id: str | None = None
    region: str | None = None
    metadata: dict[str, str] = field(default_factory=dict, hash=False)
    org_master_key: bytes | str | None = field(default=None, repr=False)
    actions: SecurityActions = field(default_factory=SecurityActions, hash=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "permissions", permission_set(self.permissions))


def run_security_actions(value: Any, direction: Direction, ctx: SecurityContext) -> None:
    """Evaluate the checks for this call; the first Abort (or exception) ends it."""
    model_type = value if isinstance(value, type) else type(value)
    for registered in ctx.actions.for_call(model_type, direction):
        try:
            result = registered.action(value, direction, ctx)
        except Exception as e:
            logger.info(
                f"Security action '{registered.name}' raised on {direction.value} "
                f"of {model_type.__name__}: {e}"
            )
            raise SecurityActionError(registered.name, str(e)) from e

        if isinstance(result, Abort):
            logger.info(
                f"Security action '{registered.name}' aborted {direction.value} "
                f"of {model_type.__name__}: {result.reason}"
            )
            raise SecurityActionError(registered.name, result.reason)
        if not isinstance(result, Continue):
            raise SecurityActionError(
                registered.name,
                f"returned {type(result).__name__}, expected Continue or Abort",
            )
