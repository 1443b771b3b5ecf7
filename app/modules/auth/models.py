# Authentication is handled by Supabase Auth (auth.users); there are no
# application tables for it. See service.py for the calls made.
