# Supabase tables: families, family_members, email_preferences
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

families:
- id: uuid (primary key)
- name: text (not null)
- color: text (not null, default: '#8B5CF6')
- created_by: uuid (foreign key to auth.users.id, nullable)
- created_at: timestamp (default: now())

family_members:
- id: uuid (primary key)
- family_id: uuid (foreign key to families.id, not null)
- user_id: uuid (foreign key to auth.users.id, not null)
- email: text (not null)
- name: text (not null)
- role: family_role enum (not null, default: 'member') - values: admin, member, child
- joined_at: timestamp (nullable)
- unique constraint on (family_id, user_id)

email_preferences:
- id: uuid (primary key)
- family_id: uuid (foreign key to families.id, unique)
- reminder_enabled: boolean (default: true)
- reminder_days_threshold: integer (default: 1)
- summary_frequency: email_frequency enum - values: daily, weekly, biweekly, monthly, never
- summary_months_ahead: integer (default: 1)
- updated_at: timestamp (default: now())

RLS policies on family_members reference family_members itself, which makes
direct SELECTs recurse ("infinite recursion detected in policy"). The
SECURITY DEFINER functions below read the same rows without going through
the policies:

- get_user_families() -> setof (id, name, color, created_by, created_at)
  families where a family_members row has user_id = auth.uid()
- user_families() -> setof (family_id)
- safe_create_family(p_name text, p_user_id uuid) -> uuid
  returns the existing id when (name, created_by) already exists, otherwise
  inserts the family and the creator as an 'admin' member
- get_family_members_by_family_id(p_family_id uuid) -> setof family_members
- safe_is_family_member(p_family_id uuid) -> boolean
- safe_is_family_admin(p_family_id uuid) -> boolean
"""
