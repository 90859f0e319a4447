# Services package init
"""
EntomoGuide Backend: Services Layer
====================================

What:  Business logic between the routes (HTTP) and the database.
How:   Services are plain classes built once by the application factory and
       stored on `app.state`; every database method takes the request's
       AsyncSession as its first argument.

Service Inventory:
    - CredentialStore:       Account persistence and password hashing
    - TokenService:          Session token issue/verify (security.py)
    - AccountWorkflow:       register / login / approve / revert
    - NotificationDispatcher: Transactional e-mail (SMTP implementation)
    - FileService:           Upload validation and storage
    - AttachmentManager:     Insect images with the per-insect limit
    - CatalogService:        Category and insect CRUD
"""
