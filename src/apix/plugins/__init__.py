"""Built-in authentication plugins.

Each sub-package provides one :class:`~apix.auth.base.AuthPlugin`:

* :mod:`~apix.plugins.api_key` -- static key in a header, query param, or cookie.
* :mod:`~apix.plugins.bearer` -- ``Authorization: Bearer <token>``.
* :mod:`~apix.plugins.basic` -- ``Authorization: Basic <base64>``.

:func:`apix.auth.create_default_manager` registers all of them.
"""
