"""Service layer for the dynalink service.

This package contains the business logic: code generation, link creation
and updates, redirect resolution and usage aggregation. Services orchestrate
repositories and the resolution cache. Import from the submodules, e.g.
``from dynalink.services.links import LinkService``.
"""
