from textual.message import Message

from core.errors import PosError


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class CatalogChangedMessage(Message):
    """
    Posted by the app to the active screen whenever the merged catalog
    changes, locally or after a remote reconciliation.

    Catalog and cart screens refresh on it.
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired when a line is added, changed or removed, or the cart is cleared by
    a checkout. Will trigger a refresh of cart screen and sidebar.
    """

    bubble = True


class SalesChangedMessage(Message):
    """
    Fired when a purchase is recorded or confirmed, or a session ends.
    Listened to by history screen and sidebar earnings.
    """

    bubble = True


class SyncFailedMessage(Message):
    """
    A queued remote write gave up; the change stays local.
    """

    bubble = True

    def __init__(self, error: PosError) -> None:
        super().__init__()
        self.error = error


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called,
    bubbles up to the app
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
