"""Error types shared by the trainer, the sync bridge and the stats ledger."""


class SmishDefenseError(Exception):
    """Base class for all trainer errors."""


class ValidationError(SmishDefenseError):
    """An attempt is missing required fields or carries an unknown action."""


class PersistenceError(SmishDefenseError):
    """The ledger document could not be read or written."""


class TransientSyncFailure(SmishDefenseError):
    """Forwarding an attempt to the stats API failed."""


class CatalogLoadError(SmishDefenseError):
    """The message catalog could not be loaded or is malformed."""


class SessionStateError(SmishDefenseError):
    """A transition was requested that the current session state does not allow."""
