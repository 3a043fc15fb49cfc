"""Typed game errors.

Every validation failure raised by the game modules derives from
``GameError`` and carries a user-facing message plus the HTTP status the API
layer should answer with. Partial fills and failed orders are normal
outcomes and never raise.
"""


class GameError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --- 404 ---------------------------------------------------------------------

class RoomNotFoundError(GameError):
    status_code = 404


class PlayerNotFoundError(GameError):
    status_code = 404


class StockNotFoundError(GameError):
    status_code = 404


class OrderNotFoundError(GameError):
    status_code = 404


class EventNotFoundError(GameError):
    status_code = 404


# --- 400 ---------------------------------------------------------------------

class InvalidOrderError(GameError):
    pass


class InvalidRoomSettingsError(GameError):
    pass


class RoomNotJoinableError(GameError):
    pass


class NameTakenError(GameError):
    pass


class InvalidPlayerNameError(GameError):
    pass


class NotAllPlayersActedError(GameError):
    pass


class NotEnoughPlayersError(GameError):
    pass


class RoomFinishedError(GameError):
    pass


# --- 409 ---------------------------------------------------------------------

class WrongPhaseError(GameError):
    status_code = 409


class DuplicateOrderError(GameError):
    status_code = 409


class OrderNotCancellableError(GameError):
    status_code = 409


class StalePhaseError(GameError):
    """The room moved on before this advance could be applied."""
    status_code = 409


class EventNotRevealedError(GameError):
    status_code = 409


class EventAlreadyAppliedError(GameError):
    status_code = 409
