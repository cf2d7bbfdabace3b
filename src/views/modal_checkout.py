from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, MarkdownViewer

from core.cart import CartManager
from utils.pure import format_money, generate_markdown_table


def order_summary_markdown(cart: CartManager) -> str:
    headers = ["Product", "Unit Price", "Quantity", "Subtotal"]
    rows = [
        [line.name, format_money(line.price), line.quantity, format_money(line.subtotal)]
        for line in cart.lines
    ]
    md = "### Order Summary\n\n"
    md += generate_markdown_table(headers, rows, ["l", "r", "c", "r"])
    md += f"\n\n**Total:** {format_money(cart.total)}"
    return md


class CheckoutModal(ModalScreen[bool]):
    """
    Order summary for the cart, confirmed before the sale is recorded.
    Return True to check out, False to go back.
    """

    def __init__(self, cart: CartManager):
        super().__init__()
        self._cart = cart

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Record Sale", id="btn-submit", variant="primary")

    async def on_mount(self):
        await self.query_one(MarkdownViewer).document.update(
            order_summary_markdown(self._cart)
        )
        self.query_one("#btn-submit").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-submit")
    def handle_submit(self):
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
