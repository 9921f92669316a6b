"""Core Business Logic Module

This module provides the provisioning logic behind the SCIM API,
independent of Flask.

Module Structure:
    - errors.py               : ScimError taxonomy (401/400/404/409/500)
    - store.py                : SQLAlchemy models and the UserStore accessor
    - scim_transformer.py     : user row ↔ SCIM 2.0 transformations
    - filters.py              : single-clause SCIM filter parser
    - pagination.py           : startIndex/count → offset/limit
    - validators.py           : SCIM payload validation
    - provisioning_service.py : list/get/create/replace/delete orchestration
    - audit.py                : signed JSONL audit trail

Usage Pattern:
    from scim_provisioning.core.store import UserStore
    from scim_provisioning.core import provisioning_service

    store = UserStore.from_url("sqlite://")
    store.create_schema()
    provisioning_service.create_user_scim(store, payload)
"""
