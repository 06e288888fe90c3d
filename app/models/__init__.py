# app/models/__init__.py
"""
Exported ORM models of the replenishment engine.
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- master data --------
    ("app.models.item", "Item"),
    ("app.models.warehouse", "Warehouse"),
    # -------- lots --------
    ("app.models.batch", "Batch"),
    ("app.models.batch_transaction", "BatchTransaction"),
    # -------- stock position / ledger --------
    ("app.models.stock_level", "StockLevel"),
    ("app.models.stock_ledger", "StockLedger"),
    # -------- replenishment --------
    ("app.models.reorder_setting", "ReorderSetting"),
    ("app.models.reorder_alert", "ReorderAlert"),
    ("app.models.purchase_order", "PurchaseOrder"),
    ("app.models.purchase_order_line", "PurchaseOrderLine"),
]

for _module, _cls in MODEL_SPECS:
    _export(_module, _cls)

__all__ = [cls for _, cls in MODEL_SPECS]
