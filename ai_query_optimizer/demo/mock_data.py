# ai_query_optimizer/demo/mock_data.py

"""
Deterministic mock business-data snapshot.

Used by the performance self-test and the CLI when no snapshot file is
given. Dates are laid out relative to ``now`` so recency filtering has
both fresh and stale items to work on.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

PRODUCTION_STATUSES = ["W trakcie", "Zaplanowane", "Wstrzymane", "Zakończone", "Anulowane"]
ORDER_STATUSES = ["Nowe", "W realizacji", "Wysłane", "Dostarczone"]
UNITS = ["kg", "szt", "l"]


def build_mock_business_data(
    inventory_items: int = 120,
    recipes: int = 40,
    orders: int = 30,
    production_tasks: int = 25,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build a snapshot with every known collection populated.

    Args:
        inventory_items: Number of inventory records
        recipes: Number of recipe records
        orders: Number of customer orders
        production_tasks: Number of production tasks
        now: Reference time for generated dates

    Returns:
        Snapshot mapping with ``summary`` and ``analysis`` blocks
    """
    now = now or datetime.now()

    def days_ago(days: int) -> str:
        return (now - timedelta(days=days)).isoformat()

    inventory = [
        {
            "id": f"inv-{i:03d}",
            "name": f"Surowiec {i:03d}",
            "category": "Surowce" if i % 3 else "Opakowania",
            "quantity": (i * 7) % 50,
            "minQuantity": 10,
            "unit": UNITS[i % len(UNITS)],
            "location": f"A-{i % 12:02d}",
            "description": f"Składnik magazynowy numer {i} używany w produkcji",
            "lastUpdate": days_ago(i % 60),
        }
        for i in range(inventory_items)
    ]

    recipe_list = [
        {
            "id": f"rec-{i:03d}",
            "name": f"Receptura {i:03d}",
            "product": f"Produkt {i:03d}",
            "components": [
                {"inventoryId": f"inv-{(i + j) % max(inventory_items, 1):03d}", "quantity": j + 1}
                for j in range(4)
            ],
            "ingredients": [{"name": f"Składnik {j}", "amount": 0.5 * (j + 1)} for j in range(3)],
            "notes": "Standardowa receptura produkcyjna",
            "updatedAt": days_ago(i * 2),
        }
        for i in range(recipes)
    ]

    customers = [
        {"id": f"cus-{i:02d}", "name": f"Klient {i:02d}", "email": f"klient{i}@example.com"}
        for i in range(15)
    ]

    order_list = [
        {
            "id": f"ord-{i:03d}",
            "customer": customers[i % len(customers)]["name"],
            "status": ORDER_STATUSES[i % len(ORDER_STATUSES)],
            "orderDate": days_ago(i * 3),
            "items": [{"recipeId": f"rec-{i % max(recipes, 1):03d}", "quantity": 10 + i}],
            "totalValue": 1000 + i * 150,
        }
        for i in range(orders)
    ]

    production = [
        {
            "id": f"mo-{i:03d}",
            "moNumber": f"MO{i:05d}",
            "name": f"Zadanie produkcyjne {i:03d}",
            "status": PRODUCTION_STATUSES[i % len(PRODUCTION_STATUSES)],
            "scheduledDate": (now + timedelta(days=i - 10)).isoformat(),
            "recipeId": f"rec-{i % max(recipes, 1):03d}",
            "quantity": 100 + i * 5,
        }
        for i in range(production_tasks)
    ]

    suppliers = [
        {"id": f"sup-{i:02d}", "name": f"Dostawca {i:02d}", "country": "PL"}
        for i in range(10)
    ]

    purchase_orders = [
        {
            "id": f"po-{i:03d}",
            "number": f"PO{i:05d}",
            "supplierId": suppliers[i % len(suppliers)]["id"],
            "supplierName": suppliers[i % len(suppliers)]["name"],
            "status": "Zamówione" if i % 2 else "Dostarczone",
            "orderDate": days_ago(i * 4),
            "items": [
                {"inventoryId": f"inv-{(i * 3 + j) % max(inventory_items, 1):03d}", "quantity": 50, "unitPrice": 2.5 + j}
                for j in range(3)
            ],
            "totalValue": 400 + i * 20,
            "currency": "PLN",
        }
        for i in range(20)
    ]

    supplier_prices = [
        {
            "id": f"sp-{i:03d}",
            "inventoryId": f"inv-{i % max(inventory_items, 1):03d}",
            "supplierId": suppliers[i % len(suppliers)]["id"],
            "price": round(1.5 + (i % 9) * 0.75, 2),
            "currency": "PLN",
            "minQuantity": 25,
        }
        for i in range(60)
    ]

    invoices = [
        {
            "id": f"fv-{i:03d}",
            "number": f"FV/{i:04d}",
            "customer": customers[i % len(customers)]["name"],
            "orderId": f"ord-{i % max(orders, 1):03d}",
            "issueDate": days_ago(i * 3),
            "dueDate": days_ago(i * 3 - 14),
            "totalAmount": 1230 + i * 100,
            "paidAmount": 0 if i % 4 == 0 else 1230 + i * 100,
            "status": "issued",
        }
        for i in range(25)
    ]

    cmr_documents = [
        {
            "id": f"cmr-{i:02d}",
            "cmrNumber": f"CMR/{i:04d}",
            "status": "W transporcie" if i % 2 else "Dostarczone",
            "linkedOrderIds": [f"ord-{i:03d}"],
            "carrier": "Trans-Pol",
            "issueDate": days_ago(i * 5),
        }
        for i in range(10)
    ]

    stocktaking = [
        {
            "id": f"st-{i}",
            "name": f"Inwentaryzacja {i}",
            "warehouseId": "wh-main",
            "status": "Zakończona",
            "startDate": days_ago(90 * (i + 1)),
        }
        for i in range(4)
    ]

    price_history = [
        {
            "id": f"ph-{i:03d}",
            "inventoryId": f"inv-{i % max(inventory_items, 1):03d}",
            "supplierId": suppliers[i % len(suppliers)]["id"],
            "price": round(1.2 + (i % 7) * 0.5, 2),
            "currency": "PLN",
            "effectiveDate": days_ago(i * 6),
            "changeReason": "Aktualizacja cennika",
        }
        for i in range(40)
    ]

    low_stock = sum(1 for item in inventory if item["quantity"] <= item["minQuantity"])
    active_tasks = sum(1 for task in production if task["status"] == "W trakcie")

    return {
        "summary": {
            "totalInventoryItems": len(inventory),
            "totalRecipes": len(recipe_list),
            "totalOrders": len(order_list),
            "totalProductionTasks": len(production),
            "activeProductionTasks": active_tasks,
            "itemsLowOnStock": low_stock,
            "totalSuppliers": len(suppliers),
            "totalInvoices": len(invoices),
            "timestamp": now.isoformat(),
        },
        "recipes": recipe_list,
        "inventory": inventory,
        "orders": order_list,
        "production": production,
        "suppliers": suppliers,
        "customers": customers,
        "purchaseOrders": purchase_orders,
        "inventorySupplierPrices": supplier_prices,
        "invoices": invoices,
        "cmrDocuments": cmr_documents,
        "stocktaking": stocktaking,
        "inventorySupplierPriceHistory": price_history,
        "analysis": {
            "orders": {
                "count": len(order_list),
                "summary": "Zamówienia rosną miesiąc do miesiąca",
                "monthlyTotals": [12000, 13500, 15100],
            },
            "inventory": {
                "count": len(inventory),
                "summary": f"{low_stock} pozycji poniżej minimum",
            },
        },
    }
