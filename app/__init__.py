"""
Gamers Cove application package.

Layered the same way on both surfaces (CLI and web GUI):

  app/repositories/  pure I/O: the JSON-file session store.
  app/services/      domain rules: sign-in lifecycle, catalog and review
                     access, validation and display helpers.

``gamerscove.build_services`` is the integration point: it wires one session
store, the public/authenticated HTTP clients (``http_client.py``), the
identity provider (``identity_provider.py``) and the services together.
Route handlers in ``gamerscove_gui.py`` and the CLI in ``gamerscove.py`` use
the services directly.
"""
