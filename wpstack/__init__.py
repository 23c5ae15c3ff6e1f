"""Local WordPress development instances on Docker Compose.

Submodules:
- ports: host/sibling port allocation and the allocation lock
- composefile: generate and read back docker-compose.yml
- compose: Docker Compose runtime bound to one instance directory
- readiness: staged readiness gate and HTTP check
- guard: rollback of half-provisioned instances
- sites, cleanup: operate on existing instances
- preflight: host platform checks
- menu: interactive menu
"""
