"""
Business-data collections and their per-collection policies.

Each collection of the business snapshot gets a baseline relevance, a
date field used for recency filtering, a sort rule and a field reducer
used when item details are dropped. Collections without an entry fall
back to the defaults at the bottom of each table.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


class DataCollection(Enum):
    """Named collections in a business-data snapshot."""
    SUMMARY = "summary"
    RECIPES = "recipes"
    INVENTORY = "inventory"
    ORDERS = "orders"
    PRODUCTION = "production"
    SUPPLIERS = "suppliers"
    CUSTOMERS = "customers"
    PURCHASE_ORDERS = "purchaseOrders"
    INVENTORY_SUPPLIER_PRICES = "inventorySupplierPrices"
    INVOICES = "invoices"
    CMR_DOCUMENTS = "cmrDocuments"
    STOCKTAKING = "stocktaking"
    INVENTORY_SUPPLIER_PRICE_HISTORY = "inventorySupplierPriceHistory"

    @classmethod
    def from_key(cls, key: str) -> Optional["DataCollection"]:
        """Map a snapshot key to a collection, or None if unknown."""
        try:
            return cls(key)
        except ValueError:
            return None


# Weight of any collection not listed below
DEFAULT_BASELINE_RELEVANCE = 0.2

BASELINE_RELEVANCE: Dict[DataCollection, float] = {
    DataCollection.RECIPES: 0.3,
    DataCollection.INVENTORY: 0.3,
    DataCollection.ORDERS: 0.3,
    DataCollection.PRODUCTION: 0.3,
    DataCollection.SUPPLIERS: 0.2,
    DataCollection.CUSTOMERS: 0.2,
    DataCollection.PURCHASE_ORDERS: 0.2,
    DataCollection.INVENTORY_SUPPLIER_PRICES: 0.2,
    DataCollection.SUMMARY: 0.8,
    DataCollection.INVOICES: 0.2,
    DataCollection.CMR_DOCUMENTS: 0.2,
    DataCollection.STOCKTAKING: 0.2,
    DataCollection.INVENTORY_SUPPLIER_PRICE_HISTORY: 0.1,
}

# Counters kept when the summary is reduced
SUMMARY_KEY_COUNTERS = (
    "totalInventoryItems",
    "totalRecipes",
    "totalOrders",
    "totalProductionTasks",
    "activeProductionTasks",
    "itemsLowOnStock",
    "timestamp",
)

PRODUCTION_STATUS_PRIORITY = {
    "W trakcie": 1,
    "Wstrzymane": 2,
    "Zaplanowane": 3,
    "Zakończone": 4,
    "Anulowane": 5,
}
UNKNOWN_STATUS_PRIORITY = 10


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored date value into a naive local datetime.

    Accepts datetimes, dates, ISO-8601 strings, epoch numbers (seconds or
    milliseconds) and Firestore-style ``{"seconds": ...}`` mappings.
    Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, datetime):
            result = value
        elif isinstance(value, date):
            result = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)):
            seconds = value / 1000 if abs(value) > 1e11 else value
            result = datetime.fromtimestamp(seconds)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            result = datetime.fromisoformat(text)
        elif isinstance(value, Mapping) and "seconds" in value:
            result = datetime.fromtimestamp(float(value["seconds"]))
        else:
            return None
    except (ValueError, TypeError, OverflowError, OSError):
        return None

    if result.tzinfo is not None:
        result = result.astimezone().replace(tzinfo=None)
    return result


def _first(item: Mapping[str, Any], *fields: str) -> Any:
    for name in fields:
        value = item.get(name)
        if value:
            return value
    return None


DATE_FIELDS: Dict[DataCollection, Tuple[str, ...]] = {
    DataCollection.ORDERS: ("orderDate", "createdAt", "date"),
    DataCollection.PRODUCTION: ("scheduledDate", "startDate", "endDate", "createdAt", "date"),
    DataCollection.INVENTORY: ("lastUpdate", "updatedAt", "createdAt"),
    DataCollection.RECIPES: ("updatedAt", "createdAt"),
    DataCollection.PURCHASE_ORDERS: ("orderDate", "createdAt"),
    DataCollection.INVOICES: ("issueDate", "createdAt"),
    DataCollection.CMR_DOCUMENTS: ("issueDate", "loadingDate", "createdAt"),
    DataCollection.INVENTORY_SUPPLIER_PRICE_HISTORY: ("effectiveDate", "createdAt"),
}
DEFAULT_DATE_FIELDS = ("createdAt", "updatedAt", "date")


def item_date(item: Mapping[str, Any], collection: Optional[DataCollection]) -> Optional[datetime]:
    """The date that places ``item`` in time for its collection."""
    fields = DATE_FIELDS.get(collection, DEFAULT_DATE_FIELDS)
    return to_datetime(_first(item, *fields))


def _name_key(item: Mapping[str, Any]) -> Tuple:
    name = item.get("name") or item.get("title") or item.get("id") or ""
    return (str(name).casefold(),)


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _inventory_key(item: Mapping[str, Any]) -> Tuple:
    low_stock = _number(item.get("quantity")) <= _number(item.get("minQuantity"))
    return (not low_stock,) + _name_key(item)


def _newest_first_key(collection: DataCollection) -> Callable[[Mapping[str, Any]], Tuple]:
    def key(item: Mapping[str, Any]) -> Tuple:
        when = item_date(item, collection)
        if when is None:
            return (1, 0.0)
        return (0, -_timestamp(when))
    return key


def _production_key(item: Mapping[str, Any]) -> Tuple:
    when = item_date(item, DataCollection.PRODUCTION)
    status = item.get("status")
    priority = UNKNOWN_STATUS_PRIORITY
    if isinstance(status, str):
        priority = PRODUCTION_STATUS_PRIORITY.get(status, UNKNOWN_STATUS_PRIORITY)
    if when is None:
        return (1, 0.0, priority)
    return (0, _timestamp(when), priority)


def _timestamp(when: datetime) -> float:
    try:
        return when.timestamp()
    except (OverflowError, OSError, ValueError):
        return when.replace(tzinfo=timezone.utc).timestamp()


# Low stock first, newest orders first, soonest-scheduled production first
SORT_KEYS: Dict[DataCollection, Callable[[Mapping[str, Any]], Tuple]] = {
    DataCollection.INVENTORY: _inventory_key,
    DataCollection.ORDERS: _newest_first_key(DataCollection.ORDERS),
    DataCollection.PURCHASE_ORDERS: _newest_first_key(DataCollection.PURCHASE_ORDERS),
    DataCollection.INVOICES: _newest_first_key(DataCollection.INVOICES),
    DataCollection.PRODUCTION: _production_key,
}


def sort_items(items: List[Mapping[str, Any]], collection: Optional[DataCollection]) -> List[Mapping[str, Any]]:
    """Sort a collection's items by its relevance rule (stable)."""
    return sorted(items, key=SORT_KEYS.get(collection, _name_key))


def _count(value: Any) -> Optional[int]:
    # None when the source has no such list, so the field is dropped
    return len(value) if isinstance(value, (list, tuple)) else None


def _reduce_recipe(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "product": item.get("product"),
        "componentsCount": _count(item.get("components")),
        "ingredientsCount": _count(item.get("ingredients")),
    }


def _reduce_inventory(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "quantity": item.get("quantity"),
        "minQuantity": item.get("minQuantity"),
        "unit": item.get("unit"),
    }


def _reduce_order(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "customer": item.get("customer"),
        "status": item.get("status"),
        "orderDate": item.get("orderDate"),
        "itemsCount": _count(item.get("items")),
    }


def _reduce_production(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": item.get("name") or item.get("productName"),
        "status": item.get("status"),
        "scheduledDate": item.get("scheduledDate"),
        "startDate": item.get("startDate"),
        "endDate": item.get("endDate"),
        "recipe": item.get("recipe") or item.get("recipeId"),
        "quantity": item.get("quantity"),
        "moNumber": item.get("moNumber"),
    }


def _reduce_purchase_order(item: Mapping[str, Any]) -> Dict[str, Any]:
    # Line items stay: supplier costing reads them
    return {
        "id": item.get("id"),
        "number": item.get("number") or item.get("poNumber"),
        "supplierId": item.get("supplierId"),
        "supplierName": item.get("supplierName"),
        "status": item.get("status"),
        "orderDate": item.get("orderDate") or item.get("createdAt"),
        "deliveryDate": item.get("deliveryDate") or item.get("expectedDeliveryDate"),
        "totalValue": item.get("totalValue") or item.get("totalGross"),
        "items": item.get("items"),
        "currency": item.get("currency"),
    }


def _reduce_supplier_price(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "inventoryId": item.get("inventoryId"),
        "supplierId": item.get("supplierId"),
        "price": item.get("price"),
        "currency": item.get("currency"),
        "minQuantity": item.get("minQuantity"),
    }


def _reduce_invoice(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "number": item.get("number"),
        "customer": item.get("customer"),
        "customerId": item.get("customerId"),
        "orderId": item.get("orderId"),
        "issueDate": item.get("issueDate"),
        "dueDate": item.get("dueDate"),
        "totalAmount": item.get("totalAmount"),
        "paidAmount": item.get("paidAmount"),
        "status": item.get("status"),
        "paymentStatus": item.get("paymentStatus"),
    }


def _reduce_cmr_document(item: Mapping[str, Any]) -> Dict[str, Any]:
    linked = item.get("linkedOrderIds")
    if not linked and item.get("linkedOrderId"):
        linked = [item["linkedOrderId"]]
    return {
        "id": item.get("id"),
        "cmrNumber": item.get("cmrNumber"),
        "status": item.get("status"),
        "linkedOrderIds": linked,
        "sender": item.get("sender"),
        "receiver": item.get("receiver"),
        "carrier": item.get("carrier"),
        "issueDate": item.get("issueDate"),
        "deliveryDate": item.get("deliveryDate"),
        "loadingDate": item.get("loadingDate"),
    }


def _reduce_stocktaking(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "warehouseId": item.get("warehouseId"),
        "status": item.get("status"),
        "startDate": item.get("startDate"),
        "endDate": item.get("endDate"),
        "performedBy": item.get("performedBy"),
    }


def _reduce_price_history(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "inventoryId": item.get("inventoryId"),
        "supplierId": item.get("supplierId"),
        "price": item.get("price"),
        "currency": item.get("currency"),
        "effectiveDate": item.get("effectiveDate"),
        "changeReason": item.get("changeReason"),
    }


def _reduce_default(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": item.get("name") or item.get("title"),
        "status": item.get("status"),
    }


REDUCERS: Dict[DataCollection, Callable[[Mapping[str, Any]], Dict[str, Any]]] = {
    DataCollection.RECIPES: _reduce_recipe,
    DataCollection.INVENTORY: _reduce_inventory,
    DataCollection.ORDERS: _reduce_order,
    DataCollection.PRODUCTION: _reduce_production,
    DataCollection.PURCHASE_ORDERS: _reduce_purchase_order,
    DataCollection.INVENTORY_SUPPLIER_PRICES: _reduce_supplier_price,
    DataCollection.INVOICES: _reduce_invoice,
    DataCollection.CMR_DOCUMENTS: _reduce_cmr_document,
    DataCollection.STOCKTAKING: _reduce_stocktaking,
    DataCollection.INVENTORY_SUPPLIER_PRICE_HISTORY: _reduce_price_history,
}


def reduce_item(item: Mapping[str, Any], collection: Optional[DataCollection]) -> Dict[str, Any]:
    """Keep only the identifying/summary fields of an item.

    Fields the item does not carry are left out rather than set to None.
    A reduction that would serialize larger than the item (renamed keys,
    counts replacing tiny lists) yields a plain copy of the item instead.
    """
    reduced = REDUCERS.get(collection, _reduce_default)(item)
    reduced = {key: value for key, value in reduced.items() if value is not None}
    if serialized_length(reduced) > serialized_length(item):
        return dict(item)
    return reduced


def serialized_length(data: Any) -> int:
    """Length of the compact JSON form used to size contexts."""
    return len(json.dumps(data, default=str, ensure_ascii=False, separators=(",", ":")))


def reduce_summary(summary: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the key counters of the summary block."""
    return {key: summary[key] for key in SUMMARY_KEY_COUNTERS if key in summary}
