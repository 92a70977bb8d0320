"""volley CLI - send an HTTP request once or many times."""

import sys

import click

from volley import __version__

TOOL_HELP = """\
volley - HTTP requests from the command line, once or many times.

Builds a request from config, flags, templates and stdin, sends it,
and prints the response as body, status code or verbose output.

\b
BASICS
──────
  volley https://api.example.com/users
  volley -m POST https://api.example.com/users -b '{"name": "test"}'
  echo 'name: test' | volley -m POST https://api.example.com/users

  With `url` set in .volley.yml, relative paths work:
    volley /users

\b
BODIES
──────
  -b '{"a": 1}'          inline body
  -b @payload.yml        body read from a file
  -b stdin               body read from standard input
  -t hello.tmpl          template file, rendered with -v variables
  -p payload.json        legacy payload file, sent as-is

  Bodies sent as JSON may be written in YAML; they are converted.

\b
TEMPLATES
─────────
  Template variables are referenced as {{.Vars.name}}:
    volley -m POST /greet -t greeting.tmpl -v name=World

  Without any variables the body is sent untouched. A variable that
  was not supplied renders as <no value>; --strict-vars makes it an error.

\b
FORMS
─────
  --form reads the body as one key=value pair per line. A value of
  @path uploads that file, which switches to multipart/form-data:
    printf 'title=Report\\nfile=@report.pdf' | volley -m POST /upload --form

\b
DISPLAY
───────
  -ro / --response-only     response body (default)
  -sco / --status-code-only status code only
  -I / --verbose            status line, headers and body
  When more than one is given, the last one wins.

\b
REPEATING
─────────
  volley /health --repeat-times 100 --repeat-concurrent 10
  Each line is prefixed with its iteration number.

\b
CONFIG FILE (.volley.yml)
─────────────────────────
  Config resolution order:
    1. -c/--config flag (explicit path)
    2. .volley.yml / .volley.yaml in CWD
    3. ~/.volley/config.yml

  \b
  url: https://api.example.com
  display: verbose                # body | status-code-only | verbose
  timeout: 30
  env_file: .env                  # $VAR / ${VAR} resolved from it
  headers:
    X-Api-Key: ${API_KEY}
  client_auth:
    cert: client.pem              # path or inline PEM
    key: client-key.pem
    ca: ca.pem
    username: alice
    password: ${API_PASSWORD}
  flags:
    follow_redirects: true
    verify_tls: true
    use_color: true
  variables:
    name: World
  request:
    method: POST
    body: {"hello": "{{.Vars.name}}"}
  repeat:
    times: 10
    concurrent: 2
"""

_REDIRECTS = {"follow": True, "stop": False}


@click.command(
    cls=click.Command,
    help=TOOL_HELP,
    context_settings={"max_content_width": 88},
)
@click.argument("url", required=False)
@click.option("-u", "--url", "url_option", default=None, help="URL or path. Overrides the URL argument.")
@click.option("-m", "--method", default=None, help="HTTP method. Default: GET.")
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .volley.yml in CWD, then ~/.volley/config.yml.",
)
@click.option(
    "-H",
    "--header",
    multiple=True,
    help="HTTP header as 'Name: Value'. Repeatable.",
)
@click.option("-b", "--body", default=None, help="Request body: inline text, @FILE, or 'stdin'.")
@click.option("-t", "--template", default=None, help="Template file used as the request body.")
@click.option(
    "-p",
    "--payload-file",
    default=None,
    help="Legacy payload file, sent without template processing.",
)
@click.option(
    "-v",
    "--var",
    multiple=True,
    help="Template variable as key=value, referenced as {{.Vars.key}}. Repeatable.",
)
@click.option(
    "--form",
    "form",
    is_flag=True,
    default=False,
    help="Send the body as form fields (one key=value per line, key=@FILE uploads).",
)
@click.option(
    "--form-encoding",
    type=click.Choice(["auto", "urlencoded", "multipart"]),
    default=None,
    help="Form encoding. Default: multipart when uploading files, else urlencoded.",
)
@click.option("--client-cert", default=None, help="Client certificate: file path or inline PEM.")
@click.option("--client-cert-key", default=None, help="Client certificate key: file path or inline PEM.")
@click.option("--client-ca", default=None, help="CA certificate(s) to trust: file path or inline PEM.")
@click.option("--basic-auth-user", default=None, help="Username for HTTP basic auth.")
@click.option("--basic-auth-pass", default=None, help="Password for HTTP basic auth.")
@click.option(
    "-k",
    "--insecure",
    is_flag=True,
    default=False,
    help="Skip TLS certificate verification.",
)
@click.option("--timeout", type=int, default=None, help="Request timeout in seconds. Default: 300.")
@click.option(
    "--follow-redirect",
    "-follow-redirect",
    "redirects",
    flag_value="follow",
    default=None,
    help="Follow 301/302 redirects (default). When both are given, the last one wins.",
)
@click.option(
    "--no-redirect",
    "-no-redirect",
    "redirects",
    flag_value="stop",
    default=None,
    help="Do not follow redirects.",
)
@click.option(
    "-ro",
    "--response-only",
    "display",
    flag_value="body",
    default=None,
    help="Only display the response body.",
)
@click.option(
    "-sco",
    "--status-code-only",
    "display",
    flag_value="status",
    default=None,
    help="Only display the response status code.",
)
@click.option(
    "-I",
    "--verbose",
    "display",
    flag_value="verbose",
    default=None,
    help="Display the status line, response headers and body.",
)
@click.option("--repeat-times", type=int, default=None, help="Number of iterations to submit the request.")
@click.option(
    "--repeat-concurrent",
    type=int,
    default=None,
    help="Number of iterations allowed in flight at once.",
)
@click.option(
    "--strict-vars",
    is_flag=True,
    default=False,
    help="Fail when a template references a variable that was not supplied.",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable colored output.")
@click.version_option(__version__, prog_name="volley")
def main(
    url,
    url_option,
    method,
    config_file,
    header,
    body,
    template,
    payload_file,
    var,
    form,
    form_encoding,
    client_cert,
    client_cert_key,
    client_ca,
    basic_auth_user,
    basic_auth_pass,
    insecure,
    timeout,
    redirects,
    display,
    repeat_times,
    repeat_concurrent,
    strict_vars,
    no_color,
):
    """Send an HTTP request and print the response."""
    from volley import executor
    from volley.auth import resolve_auth
    from volley.body import BodySources, ResolvedBody, parse_template_vars, resolve_body
    from volley.config import load_config, resolve_config_path
    from volley.errors import VolleyError
    from volley.output import display_mode, format_record, style_warning
    from volley.request import (
        BODYLESS_METHODS,
        ExecutionPlan,
        build_request_spec,
        build_url,
        resolve_follow_redirects,
    )

    color = not no_color

    # --- Resolve everything before touching the network ---
    try:
        config = load_config(resolve_config_path(config_file))
        color = color and config.use_color

        request_url = build_url(url_option or url, config.url)
        method = (method or config.request.method or "GET").upper()

        auth = resolve_auth(
            client_cert,
            client_cert_key,
            client_ca,
            basic_auth_user,
            basic_auth_pass,
            defaults=config.client_auth,
        )

        variables = {**config.variables, **parse_template_vars(var)}

        resolved_body = ResolvedBody()
        if method not in BODYLESS_METHODS:
            sources = BodySources(
                body=body,
                template=template,
                config_body=config.request.body,
                config_template=(
                    config.relative_path(config.request.template) if config.request.template else None
                ),
                config_form=config.request.form,
                payload_file=payload_file,
                form=form,
                form_encoding=form_encoding or config.request.form_encoding,
            )
            resolved_body = resolve_body(sources, variables, stdin=_stdin_for(body), strict=strict_vars)

        spec = build_request_spec(
            method,
            request_url,
            resolved_body,
            cli_headers=header,
            config_headers=config.headers,
            auth=auth,
        )

        plan = ExecutionPlan(
            repeat_times=repeat_times if repeat_times is not None else config.repeat_times,
            concurrency=repeat_concurrent if repeat_concurrent is not None else config.repeat_concurrent,
            follow_redirects=resolve_follow_redirects(_REDIRECTS.get(redirects), config.follow_redirects),
            verify_tls=not insecure and config.verify_tls,
            timeout=timeout if timeout and timeout > 0 else config.timeout,
        )
    except VolleyError as e:
        _exit_err(e, color)

    mode = display_mode(display, config.display)

    if not plan.verify_tls:
        click.echo(style_warning("TLS verification is disabled for this request", color), err=True)

    # --- Execute ---
    failures = 0
    for record in executor.run(spec, auth, plan):
        text = format_record(record, mode, labelled=plan.labelled, color=color)
        if record.error:
            failures += 1
            click.echo(text, err=True)
        else:
            click.echo(text)

    if failures:
        sys.exit(1)


# ── Helpers ──────────────────────────────────────────────────────────────


def _stdin_for(body):
    """Standard input, when it may be used as a body source."""
    stream = click.get_binary_stream("stdin")
    if body == "stdin":
        return stream
    try:
        interactive = stream.isatty()
    except ValueError:
        return None
    return None if interactive else stream


def _exit_err(err, color):
    from volley.output import style_error

    click.echo(style_error(f"ERROR: {err}", color), err=True)
    sys.exit(1)
