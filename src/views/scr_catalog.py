from __future__ import annotations

from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, Select

from core.baseline import CATEGORIES
from core.errors import PosError
from db.models import Product, ProductRef
from utils.messages import CartChangedMessage, CatalogChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal
from views.modal_product_form import ProductFormModal


def row_key(ref: ProductRef) -> str:
    return f"{ref.kind}:{ref.value}"


class CatalogScreen(BaseScreen):
    """
    Product list with category filter and search; the cashier adds to cart
    from here and maintains the catalog.
    """

    BINDINGS = [
        Binding("enter", "noop", "Add to Cart", show=True, key_display="⏎"),
        Binding("ctrl+n", "new_product", "New Product", show=True),
        Binding("ctrl+e", "edit_product", "Edit", show=True),
        Binding("delete", "delete_product", "Delete", show=True),
    ]

    def __init__(self):
        super().__init__()
        self._refs: Dict[str, ProductRef] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filters"):
            yield Select(
                [("All", "All")] + [(c, c) for c in CATEGORIES],
                value="All",
                allow_blank=False,
                id="select-category",
            )
            yield Input(id="input-search", placeholder="Search products...")
        yield DataTable(id="table-products")
        with Horizontal(id="hort-buttons"):
            yield Label("", id="label-result-cnt")
            yield Button("Refresh", id="btn-refresh")
            yield Button("New", id="btn-new", variant="success")
            yield Button("Edit", id="btn-edit")
            yield Button("Delete", id="btn-delete", variant="error")
            yield Button("Add to Cart", id="btn-add-cart", variant="primary")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price")

        self.refresh_table()
        self.query_one("#input-search").focus()

    def action_noop(self):
        pass

    @on(CatalogChangedMessage)
    @on(ScreenResume)
    @on(Select.Changed, "#select-category")
    @on(Input.Changed, "#input-search")
    def handle_filter_change(self):
        self.refresh_table()

    def refresh_table(self) -> None:
        category = self.query_one("#select-category", Select).value
        search = self.query_one("#input-search", Input).value
        products = self.app.state.catalog.filter(category, search)

        table = self.query_one(DataTable)
        selected = self._selected_ref()
        table.clear()
        self._refs = {}
        for p in products:
            key = row_key(p.ref)
            self._refs[key] = p.ref
            table.add_row(str(p.id), p.name, p.category, format_money(p.price), key=key)

        # keep the cursor on the same product across refreshes
        if selected is not None and row_key(selected) in self._refs:
            table.move_cursor(row=table.get_row_index(row_key(selected)))

        self.query_one("#label-result-cnt", Label).update(f"{len(products)} products")

    def _selected_ref(self) -> Optional[ProductRef]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        return self._refs.get(key.value)

    def _selected_product(self) -> Optional[Product]:
        ref = self._selected_ref()
        product = self.app.state.catalog.find(ref) if ref else None
        if product is None:
            self.notify("Select a product first.", severity="warning")
        return product

    @on(DataTable.RowSelected)
    @on(Button.Pressed, "#btn-add-cart")
    async def handle_add_to_cart(self):
        product = self._selected_product()
        if product is None:
            return
        line = await self.app.state.cart.add(product)
        self.post_message(CartChangedMessage())
        self.notify(f"{product.name} ×{line.quantity} in cart.")

    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True, group="catalog-refresh")
    async def handle_refresh(self):
        if await self.app.state.catalog.refresh():
            self.notify("Catalog synced with the store.")
        else:
            self.notify("Store unreachable, showing the local catalog.", severity="warning")
        self.refresh_table()

    @on(Button.Pressed, "#btn-new")
    @work()
    async def action_new_product(self):
        values = await self.app.push_screen_wait(ProductFormModal())
        if values is None:
            return
        try:
            product = await self.app.state.catalog.add_product(**values)
        except PosError as exc:
            self.app.notify_error(exc)
            return
        self.notify(f"Added {product.name}.")

    @on(Button.Pressed, "#btn-edit")
    @work()
    async def action_edit_product(self):
        product = self._selected_product()
        if product is None:
            return
        values = await self.app.push_screen_wait(ProductFormModal(product))
        if values is None:
            return
        try:
            updated = await self.app.state.catalog.update_product(product.ref, **values)
        except PosError as exc:
            self.app.notify_error(exc)
            return
        self.notify(f"Saved {updated.name}.")

    @on(Button.Pressed, "#btn-delete")
    @work()
    async def action_delete_product(self):
        product = self._selected_product()
        if product is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete {product.name}? It will not come back.",
                primary_text="Delete",
                secondary_text="Keep",
                tone="error",
            )
        ):
            return
        try:
            await self.app.state.catalog.delete_product(product.ref)
        except PosError as exc:
            self.app.notify_error(exc)
            return
        self.notify(f"Deleted {product.name}.")
