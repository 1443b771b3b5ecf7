# Supabase tables: events, event_families
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

events:
- id: uuid (primary key)
- name: text (not null)
- date: date or timestamptz (not null)
- end_date: date or timestamptz (nullable, defaults to date on write)
- time: text (not null, "HH:MM")
- description: text (nullable)
- creator_id: uuid (foreign key to auth.users.id, not null)
- all_day: boolean (default: false)
- created_at: timestamp (default: now())

event_families:
- id: uuid (primary key)
- event_id: uuid (foreign key to events.id, not null)
- family_id: uuid (foreign key to families.id, not null)
- shared_by: uuid (foreign key to auth.users.id)
- shared_at: timestamp (default: now())

RPC functions (SECURITY DEFINER):
- get_user_accessible_events_safe() -> setof events
  events created by auth.uid() or shared with one of their families
- user_can_access_event_safe(event_id_param uuid) -> boolean
"""
