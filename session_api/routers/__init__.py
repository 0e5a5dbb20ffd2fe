"""
API routers.

- auth: /auth/* (staff login, refresh, me)
- guest: /guest/* (public lookups and the guest session flow)
- staff: /sessions/*, /tables/* (staff dashboard)
"""
