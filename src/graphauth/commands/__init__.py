"""Built-in CLI sub-commands for graphauth.

* :mod:`~graphauth.commands.profile` -- create, list, show and remove
  connection profiles.
* :mod:`~graphauth.commands.config` -- view and modify global settings.
* :mod:`~graphauth.commands.session` -- connect with a profile and use the
  connection (``whoami``, ``request``).

Each module exports either a :class:`typer.Typer` sub-application or plain
callback functions registered on the root app.
"""
