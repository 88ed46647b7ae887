"""kbsync error messages for the console.

Every message names what went wrong and the action that fixes it.

Usage:
    from kbsync.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

_PROVIDER_ENV = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


def err_no_api_key(model: str) -> str:
    """No API key for the provider of *model*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}' (embedding model {model}).\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix kbsync.yaml (or ~/.kbsync/config.yaml) and retry."
    )


def err_no_db(db_path: str) -> str:
    """No store file at *db_path*."""
    return (
        f"[red]Error:[/] No knowledge store found at '{db_path}'.\n"
        "  Run:  kbsync reconcile"
    )


def err_store_unavailable(message: str) -> str:
    return (
        f"[red]Error:[/] Knowledge store unavailable: {message}\n"
        "  Check that the store file is writable and not locked by another process."
    )


def err_document_not_found(path: str) -> str:
    return (
        f"[yellow]Not indexed:[/] '{path}' has no record in the knowledge store.\n"
        "  Run:  kbsync status  to see what is indexed."
    )


def err_no_external() -> str:
    return (
        "[red]Error:[/] No external document path configured.\n"
        "  Pass --external PATH or set external.path in kbsync.yaml."
    )


def err_read_only(message: str) -> str:
    return (
        f"[red]Error:[/] {message}\n"
        "  External documents are read-only; only project documents can be promoted."
    )
