from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import (
    CartChangedMessage,
    CatalogChangedMessage,
    ModeSwitchedMessage,
    SalesChangedMessage,
)
from utils.pure import format_money, generate_markdown_table
from views.modal_dialog import QuitDialogModal


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Status", id="label-info-1")
        yield Markdown("", id="md-status")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")
        yield Button("Quit", id="btn-quit", variant="error")

    async def on_mount(self):
        self.init_mode = self.app.current_mode

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(v), id="list-menu-item-" + k)
                for k, v in self.app.MODE_TITLES.items()
            ]
        )
        self.highlight_item(self.init_mode)
        await self.render_status()

    async def render_status(self) -> None:
        state = self.app.state
        catalog = state.catalog
        table_rows = [
            ["Catalog", "Synced" if catalog.remote_backed else "Offline"],
            ["Products", len(catalog.products)],
            ["In cart", state.cart.item_count],
            ["Earnings", format_money(state.checkout.earnings)],
            ["Since", f"{state.checkout.session_start:%b %d %H:%M}"],
        ]
        if catalog.pending_writes:
            table_rows.append(["Unsynced edits", len(catalog.pending_writes)])
        if state.worker.pending:
            table_rows.append(["Queued", state.worker.pending])
        md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        await self.query_one("#md-status", Markdown).update(md_table_str)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.screen.action_quit()

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "Base Screen",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """

        # auto gen titles and subtitles
        self.app.title = "Sari-Sari POS"
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v):
                self.sub_title = self.app.MODE_TITLES[k]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @on(CatalogChangedMessage)
    @on(CartChangedMessage)
    @on(SalesChangedMessage)
    async def handle_status_change(self):
        if self._show_sidebar and self.is_mounted:
            await self.query_one(Sidebar).render_status()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal(self.app.state.worker.pending))
