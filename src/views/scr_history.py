from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, MarkdownViewer

from db.models import PurchaseRecord
from utils.messages import SalesChangedMessage
from utils.pure import format_money, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class HistoryScreen(BaseScreen):
    """
    Purchases of the open session, session earnings, and closing the session.

    Layout:
    - Markdown detail view at the top, showing the highlighted purchase.
    - Purchases table below, newest first.
    """

    BINDINGS = [
        Binding("ctrl+s", "end_session", "End Session", show=True),
    ]

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-purchase-detail", show_table_of_contents=False)
            yield DataTable(id="table-purchases")
        with Horizontal(id="hort-table-control"):
            yield Label("", id="label-earnings")
            yield Button("Retry Sync", id="btn-retry")
            yield Button("End Session", id="btn-end-session", variant="warning")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Receipt", "Time", "Lines", "Total", "Synced")
        self.handle_refresh()

    @on(SalesChangedMessage)
    @on(ScreenResume)
    def handle_refresh(self):
        checkout = self.app.state.checkout
        table = self.query_one(DataTable)
        table.clear()
        for record in checkout.history:
            table.add_row(
                record.id,
                f"{record.date:%H:%M:%S}",
                str(len(record.items)),
                format_money(record.total),
                "yes" if record.synced else "pending",
                key=record.id,
            )

        self.query_one("#label-earnings", Label).update(
            f"Earnings since {checkout.session_start:%b %d %H:%M}: "
            f"{format_money(checkout.earnings)}"
        )
        self.query_one("#btn-retry", Button).disabled = not (
            checkout.pending_sessions
            or checkout.pending_purchases
            or any(not r.synced for r in checkout.history)
        )
        self._render_detail(self._highlighted())

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self) -> None:
        self._render_detail(self._highlighted())

    def _highlighted(self) -> Optional[PurchaseRecord]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value
        return next((r for r in self.app.state.checkout.history if r.id == key), None)

    @work(exclusive=True, group="purchase-detail")
    async def _render_detail(self, record: Optional[PurchaseRecord]) -> None:
        viewer = self.query_one("#md-purchase-detail", MarkdownViewer)
        if record is None:
            await viewer.document.update("### No purchases in this session yet.")
            return

        header = (
            f"### Receipt {record.id}\n"
            f"Date: {record.date:%Y-%m-%d %H:%M:%S}  \n"
            f"Status: {'synced' if record.synced else 'saved locally, not synced'}\n\n"
        )
        rows = [
            [
                item.name,
                item.category or "-",
                item.quantity,
                format_money(item.price),
                format_money(item.price * item.quantity),
            ]
            for item in record.items
        ]
        table = generate_markdown_table(
            ["Product", "Category", "Qty", "Unit Price", "Line Total"],
            rows,
            ["l", "l", "r", "r", "r"],
        )
        footer = f"\n\n**Total:** {format_money(record.total)}"
        await viewer.document.update(header + table + footer)

    @on(Button.Pressed, "#btn-retry")
    async def handle_retry(self):
        await self.app.state.checkout.retry_pending()
        self.notify("Unsynced sales queued for another try.")

    @on(Button.Pressed, "#btn-end-session")
    @work()
    async def action_end_session(self):
        checkout = self.app.state.checkout
        if not await self.app.push_screen_wait(
            DialogModal(
                f"End session with earnings of {format_money(checkout.earnings)}?",
                primary_text="End Session",
                secondary_text="Cancel",
                tone="warning",
                detail="Earnings and history reset; the summary is archived.",
            )
        ):
            return
        summary = await checkout.end_session()
        self.notify(
            f"Session closed: {summary.purchase_count} sales, "
            f"{format_money(summary.earnings)}."
        )
        self.post_message(SalesChangedMessage())
