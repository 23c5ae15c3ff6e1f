"""WordPress orchestration inside an instance's containers.

Submodules:
- cli: WP-CLI wrappers
- db: MySQL helpers
- content: wp-content staging
- site: post-provisioning configuration
- installer: create/import orchestration
"""

# Intentionally minimal; logic lives in submodules.
