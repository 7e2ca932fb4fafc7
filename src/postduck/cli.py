"""
Postduck CLI

Command-line interface for running the agent and API server, executing
requests and managing the local workspace.

Commands:
    agent           - Run the local agent
    serve           - Run the direct dispatch API
    send            - Execute a curl command or stored request
    list            - List collections and requests
    parse-curl      - Parse a curl command (optionally saving it)
    to-curl         - Render a stored request as curl
    import-postman  - Import a Postman collection
    codegen         - Generate a code snippet for a stored request
    sessions        - List or log out auth sessions
    env             - List, activate or edit environments

Examples:
    # Run the agent for the web app
    postduck agent

    # Send a curl command with a one-off variable
    postduck send "curl https://{{host}}/users" --var host=api.example.com

    # Import a Postman collection, then run one of its requests
    postduck import-postman api.postman_collection.json
    postduck send req_1718000000000_k3j9x0a2b --param id=42
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .auth.sessions import format_time_ago, get_active_session
from .codegen.generators import LANGUAGES, generate_code
from .common.config import PostduckConfig, load_config
from .common.errors import PostduckError
from .dispatch.dispatcher import RequestDispatcher
from .dispatch.executor import RequestExecutor
from .importers.curl import parse_curl, request_to_curl
from .importers.postman import parse_postman_collection
from .request.models import EnvironmentVariable, RequestDescriptor
from .store.workspace import WorkspaceStore

DEFAULT_STORE_PATH = Path.home() / '.postduck' / 'workspace.json'


def parse_pairs(pairs: Optional[List[str]], option: str) -> Dict[str, str]:
    """Parse KEY=VALUE arguments."""
    result = {}
    for pair in pairs or []:
        if '=' not in pair:
            raise PostduckError(f"{option} expects KEY=VALUE, got {pair!r}")
        key, value = pair.split('=', 1)
        result[key] = value
    return result


def get_config(args) -> PostduckConfig:
    config = load_config(getattr(args, 'config', None))
    if getattr(args, 'timeout', None):
        config.request_timeout = args.timeout
    if getattr(args, 'insecure', False):
        config.verify_ssl = False
    return config


def store_path(args, config: PostduckConfig) -> Path:
    return Path(args.store or config.store_path or DEFAULT_STORE_PATH)


def open_store(args, config: PostduckConfig) -> WorkspaceStore:
    return WorkspaceStore.load(str(store_path(args, config)))


def require_request(store: WorkspaceStore, request_id: str) -> RequestDescriptor:
    request = store.get_request(request_id)
    if request is None:
        raise PostduckError(f"Request not found: {request_id}")
    return request


def cmd_agent(args):
    """Run the local agent (blocking)."""
    from .server.agent import AgentServer

    config = get_config(args)
    server = AgentServer(config)
    try:
        server.start(host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n\n👋 Shutting down Postduck Agent...")


def cmd_serve(args):
    """Run the direct dispatch API (blocking)."""
    from .server.api import ApiServer

    config = get_config(args)
    server = ApiServer(config)
    try:
        server.start(host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n\n👋 API server stopped")


def cmd_send(args):
    """Execute a curl command or stored request and print the response."""
    config = get_config(args)
    store = open_store(args, config)

    if args.target.strip().startswith('curl'):
        request = parse_curl(args.target)
    else:
        request = require_request(store, args.target)

    executor = RequestExecutor(store, RequestDispatcher(config))
    result = executor.execute(
        request,
        path_params=parse_pairs(args.param, '--param'),
        role=args.role,
        variables=parse_pairs(args.var, '--var')
    )
    store.save(str(store_path(args, config)))

    response = result.response
    if response.status_code == 0:
        print(f"❌ {result.request.method} {result.request.url}")
    else:
        icon = "✅" if response.is_success else "⚠️"
        print(f"{icon} {result.request.method} {result.request.url} → {response.status_code} "
              f"({response.duration}ms, {response.size} bytes)")

    if args.include:
        for name, value in response.headers.items():
            print(f"   {name}: {value}")
        for cookie in response.cookies or []:
            print(f"   🍪 {cookie.name}={cookie.value}")

    if result.auth_session is not None:
        print(f"🔑 Auth session saved: {result.auth_session.name}")

    print()
    print(response.body)

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"\n✅ Saved response to {args.output}")

    if response.status_code == 0:
        sys.exit(1)


def cmd_list(args):
    """Print the collection tree with request ids."""
    config = get_config(args)
    store = open_store(args, config)

    def print_tree(parent_id: Optional[str], depth: int):
        indent = '   ' * depth
        for collection in store.list_collections(parent_id=parent_id, all_levels=False):
            print(f"{indent}📁 {collection.name}  ({collection.id})")
            print_tree(collection.id, depth + 1)
            for request in store.list_requests(collection.id):
                print(f"{indent}   {request.method:7} {request.name or request.url}  ({request.id})")

    print_tree(None, 0)

    loose = [r for r in store.list_requests() if not r.collection_id]
    for request in loose:
        print(f"{request.method:7} {request.name or request.url}  ({request.id})")


def cmd_parse_curl(args):
    """Parse a curl command; print it as JSON or save it to a collection."""
    request = parse_curl(args.curl_command)

    if not args.collection:
        print(json.dumps(request.to_dict(), indent=2))
        return

    config = get_config(args)
    store = open_store(args, config)
    request.collection_id = args.collection
    request.name = args.name or request.url
    request.order = store.max_request_order() + 1
    saved = store.create_request(request)
    store.save(str(store_path(args, config)))
    print(f"✅ Saved {saved.method} {saved.url} as {saved.id}")


def cmd_to_curl(args):
    config = get_config(args)
    store = open_store(args, config)
    print(request_to_curl(require_request(store, args.request_id)))


def cmd_import_postman(args):
    """Import a Postman collection into the workspace."""
    config = get_config(args)
    store = open_store(args, config)

    print(f"📥 Importing {args.file}")
    parsed = parse_postman_collection(Path(args.file).read_text())
    name = args.name or Path(args.file).name.rsplit('.json', 1)[0]
    destination = store.import_parsed_collection(parsed, name=name)
    store.save(str(store_path(args, config)))

    print(f"✅ Imported {parsed.name!r} into {destination.name} ({destination.id})")
    print(f"   Folders: {len(parsed.collections)}")
    print(f"   Requests: {len(parsed.requests)}")
    if parsed.variables:
        print(f"   Variables: {len(parsed.variables)} (saved as environment {destination.name!r})")


def cmd_codegen(args):
    """Print a code snippet for a stored request."""
    config = get_config(args)
    store = open_store(args, config)
    request = require_request(store, args.request_id)

    print(generate_code(
        args.lang,
        request,
        environment=store.get_active_environment(),
        sessions=store.list_auth_sessions(),
        path_params=parse_pairs(args.param, '--param')
    ))


def cmd_sessions(args):
    """List auth sessions or log out."""
    config = get_config(args)
    store = open_store(args, config)

    if args.logout_all:
        count = store.clear_auth_sessions()
        store.save(str(store_path(args, config)))
        print(f"👋 Logged out of {count} session(s)")
        return

    if args.logout:
        store.delete_auth_session(args.logout)
        store.save(str(store_path(args, config)))
        print(f"👋 Logged out of {args.logout}")
        return

    sessions = store.list_auth_sessions()
    if not sessions:
        print("No auth sessions")
        return

    active = get_active_session(sessions)
    for session in sessions:
        marker = "🟢" if active is not None and session.id == active.id else "⚪"
        print(f"{marker} {session.name}  [{session.token_type}]  "
              f"updated {format_time_ago(session.updated_at)}  ({session.id})")


def cmd_env(args):
    """List, activate or edit environments."""
    config = get_config(args)
    store = open_store(args, config)

    if args.activate:
        environment = store.set_active_environment(args.activate)
        store.save(str(store_path(args, config)))
        print(f"✅ Active environment: {environment.name}")
        return

    if args.set:
        environment = store.get_active_environment()
        if environment is None:
            raise PostduckError("No active environment")

        values = parse_pairs(args.set, '--set')
        variables = [v for v in environment.variables if v.key not in values]
        variables.extend(EnvironmentVariable(key=k, value=v, is_secret=args.secret) for k, v in values.items())
        store.update_environment(environment.id, variables=variables)
        store.save(str(store_path(args, config)))
        print(f"✅ Updated {len(values)} variable(s) in {environment.name}")
        return

    for environment in store.list_environments():
        marker = "🟢" if environment.is_active else "⚪"
        print(f"{marker} {environment.name}  ({environment.id})")
        for variable in environment.variables:
            value = '***' if variable.is_secret else variable.value
            print(f"      {variable.key} = {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='postduck',
        description="Postduck - API request runner with auth sessions and a local agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the local agent
  %(prog)s agent

  # Send a curl command
  %(prog)s send "curl -X POST https://api.example.com/login -d '{\\"user\\":\\"a\\"}'"

  # Import a Postman collection
  %(prog)s import-postman api.postman_collection.json

  # Generate Python code for a stored request
  %(prog)s codegen req_1718000000000_k3j9x0a2b --lang python
        """
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('-c', '--config', help='YAML config file')
    parser.add_argument('--store', help=f'Workspace snapshot file (default: {DEFAULT_STORE_PATH})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- AGENT command ---
    agent_parser = subparsers.add_parser('agent', help='Run the local agent')
    agent_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    agent_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 19199)')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Run the direct dispatch API')
    serve_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 8000)')

    # --- SEND command ---
    send_parser = subparsers.add_parser('send', help='Execute a curl command or stored request')
    send_parser.add_argument('target', help='curl command or stored request id')
    send_parser.add_argument('--var', nargs='+', help='Variables (KEY=VALUE) over the active environment')
    send_parser.add_argument('--param', nargs='+', help='Path parameters (NAME=VALUE)')
    send_parser.add_argument('--role', help='Team role to check execute permission for')
    send_parser.add_argument('--timeout', type=float, help='Request timeout in seconds (default: 30)')
    send_parser.add_argument('-k', '--insecure', action='store_true', help='Disable TLS verification')
    send_parser.add_argument('-i', '--include', action='store_true', help='Print response headers and cookies')
    send_parser.add_argument('-o', '--output', help='Save request and response to JSON file')

    # --- LIST command ---
    subparsers.add_parser('list', help='List collections and requests')

    # --- PARSE-CURL command ---
    parse_parser = subparsers.add_parser('parse-curl', help='Parse a curl command')
    parse_parser.add_argument('curl_command', metavar='command', help='curl command')
    parse_parser.add_argument('--collection', help='Save into this collection id')
    parse_parser.add_argument('--name', help='Name for the saved request')

    # --- TO-CURL command ---
    to_curl_parser = subparsers.add_parser('to-curl', help='Render a stored request as curl')
    to_curl_parser.add_argument('request_id', help='Stored request id')

    # --- IMPORT-POSTMAN command ---
    import_parser = subparsers.add_parser('import-postman', help='Import a Postman v2.1 collection')
    import_parser.add_argument('file', help='Collection JSON file')
    import_parser.add_argument('--name', help='Destination folder name (default: file name)')

    # --- CODEGEN command ---
    codegen_parser = subparsers.add_parser('codegen', help='Generate a code snippet')
    codegen_parser.add_argument('request_id', help='Stored request id')
    codegen_parser.add_argument('-l', '--lang', choices=LANGUAGES, default='curl', help='Language (default: curl)')
    codegen_parser.add_argument('--param', nargs='+', help='Path parameters (NAME=VALUE)')

    # --- SESSIONS command ---
    sessions_parser = subparsers.add_parser('sessions', help='List or log out auth sessions')
    sessions_parser.add_argument('--logout', metavar='SESSION_ID', help='Delete one session')
    sessions_parser.add_argument('--logout-all', action='store_true', help='Delete every session')

    # --- ENV command ---
    env_parser = subparsers.add_parser('env', help='List, activate or edit environments')
    env_parser.add_argument('--activate', metavar='ENV_ID', help='Make this environment active')
    env_parser.add_argument('--set', nargs='+', metavar='KEY=VALUE', help='Set variables in the active environment')
    env_parser.add_argument('--secret', action='store_true', help='Mark variables from --set as secret')

    return parser


COMMANDS = {
    'agent': cmd_agent,
    'serve': cmd_serve,
    'send': cmd_send,
    'list': cmd_list,
    'parse-curl': cmd_parse_curl,
    'to-curl': cmd_to_curl,
    'import-postman': cmd_import_postman,
    'codegen': cmd_codegen,
    'sessions': cmd_sessions,
    'env': cmd_env,
}


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        handler(args)
    except (PostduckError, ValueError, OSError) as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
