"""HTTP layer: SCIM blueprint, health probes, OpenAPI document."""
