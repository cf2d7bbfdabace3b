from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, Rule

from core.errors import NotFoundError
from db.models import CartLine, ProductRef
from utils.messages import CartChangedMessage, CatalogChangedMessage, SalesChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal
from views.scr_catalog import row_key


class CartScreen(BaseScreen):
    """
    Lines of the sale in progress, quantity controls and checkout
    """

    BINDINGS = [
        Binding("plus,equals_sign", "change_qty(1)", "Qty +1", show=True, key_display="+"),
        Binding("minus", "change_qty(-1)", "Qty -1", show=True, key_display="-"),
        Binding("delete", "remove_line", "Remove", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._refs: Dict[str, ProductRef] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield DataTable(id="table-cart")
        yield Label("Total: ₱0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("-", id="btn-sub-qty")
            yield Button("+", id="btn-add-qty")
            yield Button("Remove", id="btn-remove")
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Category", "Unit Price", "Qty", "Subtotal")
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(CatalogChangedMessage)
    @on(ScreenResume)
    def handle_cart_change(self):
        cart = self.app.state.cart
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        self._refs = {}
        for line in cart.lines:
            key = row_key(line.ref)
            self._refs[key] = line.ref
            table.add_row(
                line.name,
                line.category,
                format_money(line.price),
                str(line.quantity),
                format_money(line.subtotal),
                key=key,
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

        self.query_one("#label-cart-total", Label).update(
            f"Total: {format_money(cart.total)}  ({cart.item_count} items)"
        )
        self.query_one("#btn-checkout", Button).disabled = cart.is_empty

    def _selected_line(self) -> Optional[CartLine]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        ref = self._refs.get(key.value)
        return next((line for line in self.app.state.cart.lines if line.ref == ref), None)

    @on(Button.Pressed, "#btn-add-qty")
    async def handle_add_qty(self):
        await self.action_change_qty(1)

    @on(Button.Pressed, "#btn-sub-qty")
    async def handle_sub_qty(self):
        await self.action_change_qty(-1)

    async def action_change_qty(self, delta: int) -> None:
        line = self._selected_line()
        if line is None:
            return
        try:
            await self.app.state.cart.update_quantity(line.ref, line.quantity + delta)
        except NotFoundError as exc:
            self.app.notify_error(exc)
        self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-remove")
    @work()
    async def action_remove_line(self):
        line = self._selected_line()
        if line is None:
            return
        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                f"Remove {line.name} from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        )
        if remove_confirmed:
            await self.app.state.cart.remove(line.ref)
            self.post_message(CartChangedMessage())
            self.notify("Item removed from cart.", severity="information")

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        )
        if remove_confirmed:
            await self.app.state.cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if not await self.app.push_screen_wait(CheckoutModal(self.app.state.cart)):
            return

        record = await self.app.state.checkout.checkout(self.app.state.cart)
        if record is not None:
            self.notify(f"Sale recorded: {format_money(record.total)}.")
        self.post_message(CartChangedMessage())
        self.post_message(SalesChangedMessage())
