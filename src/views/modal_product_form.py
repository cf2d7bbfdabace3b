from typing import Optional

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, Select

from core.baseline import CATEGORIES
from db.models import Product


class ProductFormModal(ModalScreen[Optional[dict]]):
    """
    New/edit product form.
    Dismisses with {"name", "category", "price"} as typed, or None if cancelled.
    Validation proper happens in the catalog; here only obviously empty
    fields are caught.
    """

    def __init__(self, product: Optional[Product] = None) -> None:
        super().__init__()
        self._product = product

    def compose(self) -> ComposeResult:
        product = self._product
        categories = list(CATEGORIES)
        if product and product.category not in categories:
            categories.append(product.category)

        with Vertical(id="div-product-form"):
            yield Label(f"Edit {product.name}" if product else "New Product", id="caption")
            yield Label("Name")
            yield Input(
                value=product.name if product else "",
                placeholder="e.g. Yakult",
                id="input-name",
            )
            yield Label("Category")
            yield Select(
                [(c, c) for c in categories],
                value=product.category if product else categories[0],
                allow_blank=False,
                id="select-category",
            )
            yield Label("Price (₱)")
            yield Input(
                value=f"{product.price:.2f}" if product else "",
                placeholder="0.00",
                type="number",
                validators=[Number(minimum=0.0)],
                id="input-price",
            )
            with Horizontal():
                yield Button("Cancel", id="btn-cancel")
                yield Button(
                    "Save" if product else "Add", id="btn-save", variant="primary"
                )

    def on_mount(self):
        self.query_one("#input-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self):
        self.dismiss(None)

    @on(Input.Submitted)
    @on(Button.Pressed, "#btn-save")
    def handle_save(self):
        name_input = self.query_one("#input-name", Input)
        price_input = self.query_one("#input-price", Input)

        if not name_input.value.strip():
            name_input.focus()
            name_input.add_class("-invalid")
            self.notify("Product name is required.", severity="error")
            return
        if not price_input.value or not price_input.is_valid:
            price_input.focus()
            price_input.add_class("-invalid")
            self.notify("Price must be a non-negative number.", severity="error")
            return

        self.dismiss(
            {
                "name": name_input.value,
                "category": self.query_one("#select-category", Select).value,
                "price": price_input.value,
            }
        )
