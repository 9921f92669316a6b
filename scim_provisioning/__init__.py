"""SCIM 2.0 user provisioning service.

To use the Flask app:
    from scim_provisioning.flask_app import create_app

To use the provisioning core without Flask:
    from scim_provisioning.core.store import UserStore
    from scim_provisioning.core import provisioning_service
"""
