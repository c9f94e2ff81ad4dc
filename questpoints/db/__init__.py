from questpoints.db.database import get_session, init_db
from questpoints.db.operations import (
    award_points,
    batch_store_available,
    conditional_decrement,
    count_draw_records,
    count_items,
    count_users_above,
    create_audit_entry,
    create_batch,
    create_draw_record,
    create_inventory_grant,
    create_item,
    create_notification,
    create_user,
    draw_record_to_history,
    get_achievement,
    get_balance,
    get_owned_item,
    get_user,
    grant_achievement,
    has_achievement,
    item_to_model,
    list_audit_entries,
    list_draw_history,
    list_items,
    list_notifications,
    list_owned_items,
    toggle_equipped,
    top_users_by_points,
    upsert_achievement,
    users_just_above,
    users_just_below,
)

__all__ = [
    "award_points",
    "batch_store_available",
    "conditional_decrement",
    "count_draw_records",
    "count_items",
    "count_users_above",
    "create_audit_entry",
    "create_batch",
    "create_draw_record",
    "create_inventory_grant",
    "create_item",
    "create_notification",
    "create_user",
    "draw_record_to_history",
    "get_achievement",
    "get_balance",
    "get_owned_item",
    "get_session",
    "get_user",
    "grant_achievement",
    "has_achievement",
    "init_db",
    "item_to_model",
    "list_audit_entries",
    "list_draw_history",
    "list_items",
    "list_notifications",
    "list_owned_items",
    "toggle_equipped",
    "top_users_by_points",
    "upsert_achievement",
    "users_just_above",
    "users_just_below",
]
