# Supabase table: invitations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

invitations:
- id: uuid (primary key)
- family_id: uuid (foreign key to families.id, not null)
- email: text (not null, stored lowercased)
- name: text (nullable)
- role: family_role enum (not null, default: 'member')
- status: text (not null, default: 'pending') - values: pending, accepted, declined
- invited_at: timestamp (default: now())
- invited_by: uuid (foreign key to auth.users.id, nullable)
- last_invited: timestamp (nullable)
- unique constraint on (family_id, email)

handle_invitation_accept(invitation_id uuid, user_id uuid) -> boolean
  SECURITY DEFINER: inserts the family_members row for the invitee with the
  invited role and marks the invitation 'accepted'.
"""
