from classcoins.db.database import get_session, get_session_factory, init_db, unit_of_work
from classcoins.db.operations import (
    add_coin_transaction,
    add_history,
    add_ownership,
    coin_transaction_to_model,
    count_history,
    count_ownership,
    create_wallet,
    creature_to_model,
    decrement_balance_if_unchanged,
    get_balance,
    get_coin_transactions,
    get_creature,
    get_gate,
    get_history,
    get_or_create_wallet,
    get_ownership,
    get_school_pool,
    get_wallet,
    history_to_model,
    increment_balance,
    ownership_to_model,
    set_gate_date_if_different,
    upsert_creatures,
    wallet_to_model,
)

__all__ = [
    "add_coin_transaction",
    "add_history",
    "add_ownership",
    "coin_transaction_to_model",
    "count_history",
    "count_ownership",
    "create_wallet",
    "creature_to_model",
    "decrement_balance_if_unchanged",
    "get_balance",
    "get_coin_transactions",
    "get_creature",
    "get_gate",
    "get_history",
    "get_or_create_wallet",
    "get_ownership",
    "get_school_pool",
    "get_session",
    "get_session_factory",
    "get_wallet",
    "history_to_model",
    "increment_balance",
    "init_db",
    "ownership_to_model",
    "set_gate_date_if_different",
    "unit_of_work",
    "upsert_creatures",
    "wallet_to_model",
]
