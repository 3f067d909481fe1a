from .catalog import Tax, Category, Supplier, Product, ProductVariant
from .inventory import MovementType, StockMovement, signed_delta
from .pricing import SupplierPrice, SupplierPriceHistory, VariantSupplierExclusion, SellingPriceHistory
from .settings import Settings, SETTINGS_ROW_ID

__all__ = [
    'Tax', 'Category', 'Supplier', 'Product', 'ProductVariant',
    'MovementType', 'StockMovement', 'signed_delta',
    'SupplierPrice', 'SupplierPriceHistory', 'VariantSupplierExclusion', 'SellingPriceHistory',
    'Settings', 'SETTINGS_ROW_ID',
]
