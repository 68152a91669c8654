"""apix -- a REST API command-line client with executable extensions.

Any subcommand that ``apix`` does not recognise is delegated to an external
executable named ``apix-<name>``. The extension runs as a child process and
reaches the API through an ephemeral loopback HTTP bridge that injects the
user's credentials, so the extension itself never sees them.

Typical workflow::

    apix profile create prod --base-url https://api.example.com
    apix auth add prod --type bearer --source env:EXAMPLE_TOKEN
    apix deploy --prod            # runs ./node_modules/.bin/apix-deploy

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and profile management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    extensions: Extension discovery, the API bridge, and process execution.
"""

__version__ = "0.3.0"
