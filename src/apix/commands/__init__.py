"""Built-in CLI sub-commands for apix.

This package groups the Typer sub-command modules that form the CLI's
built-in command tree:

* :mod:`~apix.commands.auth` -- configure, store, and test credentials.
* :mod:`~apix.commands.config` -- view and modify global settings.
* :mod:`~apix.commands.profile` -- manage API profiles.
* :mod:`~apix.commands.team` -- switch the team interactive requests use.
* :mod:`~apix.commands.extensions` -- list and locate extensions.

Any other sub-command is delegated to an extension executable by
:class:`apix.app.ExtensionGroup`.
"""
