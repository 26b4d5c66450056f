"""Document store layout.

cases/{caseId}                        Case
caseQueues/{caseId}                   CaseQueue
caseOrders/{caseId}/{orderId}         CaseOrderRef
karts/{kartId}                        Kart
kartQueues/{kartId}/{orderId}         KartAssignment
users/{userId}                        UserProfile
userCarts/{userId}/{caseId}           true
userPastOrders/{userId}/{orderId}     Order
userHistory/{userId}/{entryId}        HistoryEntry
"""

from __future__ import annotations

CASES = "cases"
CASE_QUEUES = "caseQueues"
CASE_ORDERS = "caseOrders"
KARTS = "karts"
KART_QUEUES = "kartQueues"
USERS = "users"
USER_CARTS = "userCarts"
USER_PAST_ORDERS = "userPastOrders"
USER_HISTORY = "userHistory"


def case_key(case_id: str) -> str:
    return f"{CASES}/{case_id}"


def case_queue_key(case_id: str) -> str:
    return f"{CASE_QUEUES}/{case_id}"


def case_orders_key(case_id: str, order_id: str | None = None) -> str:
    base = f"{CASE_ORDERS}/{case_id}"
    return f"{base}/{order_id}" if order_id else base


def kart_key(kart_id: str) -> str:
    return f"{KARTS}/{kart_id}"


def kart_queue_key(kart_id: str, order_id: str | None = None) -> str:
    base = f"{KART_QUEUES}/{kart_id}"
    return f"{base}/{order_id}" if order_id else base


def user_key(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def cart_key(user_id: str, case_id: str | None = None) -> str:
    base = f"{USER_CARTS}/{user_id}"
    return f"{base}/{case_id}" if case_id else base


def order_key(user_id: str, order_id: str) -> str:
    return f"{USER_PAST_ORDERS}/{user_id}/{order_id}"


def history_key(user_id: str, entry_id: str | None = None) -> str:
    base = f"{USER_HISTORY}/{user_id}"
    return f"{base}/{entry_id}" if entry_id else base
