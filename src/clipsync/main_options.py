"""Click option helpers for the clipsync CLI."""
import click


def _check_mutual_exclusion(name: str, exclusive_with: list[str], opts: dict) -> None:
    """Raise UsageError if an option is combined with any option it excludes.

    Each MutuallyExclusiveOption lists every option it conflicts with, so a
    group such as --connect/--listen/--relay is expressed by giving each member
    the other two. The first conflicting option found in opts is reported.

    Args:
        name: Name of the option being processed.
        exclusive_with: Names (click parameter names, without dashes) of the
            options that cannot be combined with it.
        opts: Dictionary of options parsed so far, keyed by parameter name.

    Raises:
        click.UsageError: If an excluded option is also present.
    """
    for other in exclusive_with:
        if other in opts:
            msg = f"Options --{name} and --{other} are mutually exclusive"
            raise click.UsageError(msg)


def require_one_of(names: list[str], values: dict) -> str:
    """Return the single option name among names that has a value.

    Raises:
        click.UsageError: If none of the options was given.
    """
    given = [name for name in names if values.get(name) is not None]
    if not given:
        flags = ", ".join(f"--{name}" for name in names)
        raise click.UsageError(f"One of {flags} must be specified")
    return given[0]


class MutuallyExclusiveOption(click.Option):
    """Click option that cannot be combined with the options it names."""

    def __init__(self, *args, **kwargs):
        self.exclusive_with = kwargs.pop("exclusive_with", [])
        super().__init__(*args, **kwargs)

    def handle_parse_result(self, ctx, opts, args):
        """Check mutual exclusion before storing the value."""
        if self.name in opts:
            _check_mutual_exclusion(self.name, self.exclusive_with, opts)
        return super().handle_parse_result(ctx, opts, args)
