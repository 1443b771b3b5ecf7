# Supabase table: notifications
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

notifications:
- id: uuid (primary key)
- user_id: uuid (foreign key to auth.users.id, not null)
- title: text (not null)
- message: text (not null)
- type: text (not null, default: 'info')
- read: boolean (default: false)
- action_url: text (nullable)
- metadata: jsonb (nullable)
- created_at: timestamp (default: now())

RLS: users can only select/update rows where user_id = auth.uid().
Other users' notifications are written through the SECURITY DEFINER function
create_notification(p_user_id, p_title, p_message, p_type, p_metadata,
p_action_url) -> uuid.
"""
