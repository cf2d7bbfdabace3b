from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from core.errors import PosError
from utils.config import PosConfig
from utils.logger import get_logger, use_textual_handler
from utils.messages import (
    CatalogChangedMessage,
    ModeSwitchedMessage,
    QuitRequestedMessage,
    SalesChangedMessage,
    SyncFailedMessage,
)
from utils.pure import notification_for
from utils.state import GlobalState
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_history import HistoryScreen

_logger = get_logger(__name__)


class PosApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "catalog": CatalogScreen,
        "cart": CartScreen,
        "history": HistoryScreen,
    }

    MODE_TITLES = {
        "catalog": "Products",
        "cart": "Cart",
        "history": "Sales & Session",
    }

    CSS_PATH = "styles/pos.tcss"

    state: GlobalState

    def __init__(self, config: Optional[PosConfig] = None):
        super().__init__()
        self.state = GlobalState.from_config(config)

        # core components report through callbacks; screens listen for messages
        self.state.catalog.add_listener(self._on_catalog_changed)
        self.state.checkout.add_listener(self._on_sales_changed)
        self.state.catalog.add_error_listener(self._on_sync_failed)
        self.state.checkout.add_error_listener(self._on_sync_failed)

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        use_textual_handler()
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    def notify_error(self, error: BaseException) -> None:
        message, severity, timeout = notification_for(error)
        self.notify(message, severity=severity, timeout=timeout)

    def _on_catalog_changed(self, _products) -> None:
        self.screen.post_message(CatalogChangedMessage())

    def _on_sales_changed(self) -> None:
        self.screen.post_message(SalesChangedMessage())

    def _on_sync_failed(self, error: PosError) -> None:
        self.post_message(SyncFailedMessage(error))

    @on(SyncFailedMessage)
    def handle_sync_failed(self, message: SyncFailedMessage):
        self.notify_error(message.error)

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, message: ModeSwitchedMessage):
        _logger.debug(f"Mode {message.old_mode or '-'} -> {message.new_mode}")

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        await self.state.shutdown()
        self.exit()

    @work
    async def main_flow(self):
        await self.state.start()
        if not self.state.catalog.remote_backed:
            self.notify(
                "Store unreachable, working from the local catalog.",
                severity="warning",
                timeout=15,
            )
        self.post_message(ModeSwitchedMessage(self.current_mode, "catalog"))
        await self.switch_mode("catalog")


def main() -> None:
    app = PosApp()
    app.run()


if __name__ == "__main__":
    main()
