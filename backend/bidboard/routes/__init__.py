"""
BidBoard Backend - API Routes Package
======================================

Route Inventory:
    - applications.py:  POST /api/projects/{project_id}/applications
                        GET  /api/applications, GET /api/applications/{id}
                        PUT  /api/applications/{id}/evaluate|approve|reject|withdraw|expire
                        POST /api/applications/{id}/calculate-priority
    - health.py:        GET  /health
    - deps.py:          actor and repository dependencies

Routes stay thin: parse the request, build the Actor, call ApplicationService.
"""
