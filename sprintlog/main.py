import argparse
import logging
import sys
import traceback
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from sprintlog.backlog.errors import BacklogError, ValidationError
from sprintlog.backlog.ids import next_backlog_id
from sprintlog.backlog.schema import BacklogDraft
from sprintlog.backlog.service import BacklogService
from sprintlog.backlog.store import YamlProjectStore
from sprintlog.backlog.views import (
    active_items,
    eligible_sprints,
    find_by_backlog_id,
    find_item,
    groomable_items,
    history_items,
    sort_history,
    sort_items,
    sprint_eligible_items,
)
from sprintlog.util import load_yaml, print_error, print_info, print_warning
from sprintlog.version import __version__

VIEWS = ['active', 'groomable', 'history', 'eligible']


def main():
    try:
        exit_code = cli(sys.argv[1:])
        sys.exit(exit_code)
    except Exception:
        print_error(traceback.format_exc())
        sys.exit(1)


def cli(raw_arguments):
    args = parse_arguments(raw_arguments)
    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    if args.command is None:
        parse_arguments(['-h'])
    elif args.command == 'validate':
        from sprintlog.backlog.validate import backlog_validate_command
        return backlog_validate_command(
            Path(args.project), strict=args.strict, verbose=args.verbose, quiet=args.quiet,
        )
    elif args.command == 'sync':
        from sprintlog.backlog.sync import backlog_sync_command
        return backlog_sync_command(
            project_file=Path(args.project),
            output_path=Path(args.output),
            migrate_only=args.migrate_only,
        )
    else:
        return handle_backlog_command(args)
    return 0


def handle_backlog_command(args):
    """Run a command against the project file; 2 if it is missing, 1 on engine errors."""
    store = YamlProjectStore(args.project)
    if not store.exists():
        print_error(f'Project file not found: {args.project}')
        return 2

    try:
        if args.command == 'next-id':
            print_info(next_backlog_id(store.load().backlog))
        elif args.command == 'list':
            list_items(store.load(), args.view, args.ready)
        else:
            result = run_transition(BacklogService(store), store.load(), args)
            print_transition_result(result)
    except BacklogError as e:
        print_error(e.message)
        return 1
    return 0


def run_transition(service, project, args):
    items = project.backlog
    if args.command == 'add':
        return service.add_items(load_drafts(args.drafts))
    elif args.command == 'move':
        item_ids = [resolve_item_id(items, ref) for ref in args.items]
        if len(item_ids) == 1:
            return service.move_to_sprint(item_ids[0], args.sprint)
        return service.move_many_to_sprint(item_ids, args.sprint)
    elif args.command == 'revert':
        return service.revert_to_backlog(args.sprint, args.task, args.backlog_id)
    elif args.command == 'split':
        return service.split(resolve_item_id(items, args.item), load_drafts(args.children))
    elif args.command == 'merge':
        draft = load_drafts(args.draft)[0] if args.draft else None
        return service.merge([resolve_item_id(items, ref) for ref in args.items], draft)
    elif args.command == 'undo':
        return service.undo(resolve_item_id(items, args.item))
    elif args.command == 'delete':
        return service.delete_item(resolve_item_id(items, args.item))
    raise ValueError(f'Unknown command: {args.command}')


def resolve_item_id(items, ref):
    """Accept an item id or a backlog id; an active item wins over retired ones."""
    if find_item(items, ref) is not None:
        return ref
    matches = find_by_backlog_id(items, ref)
    active = [item for item in matches if item.is_active]
    if active:
        return active[0].id
    if len(matches) == 1:
        return matches[0].id
    return ref


def load_drafts(path):
    """Drafts from a YAML file holding one mapping or a list of mappings."""
    data = load_yaml(path)
    entries = data if isinstance(data, list) else [data]
    drafts = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError(f'{path}: each draft must be a mapping')
        try:
            drafts.append(BacklogDraft.model_validate(entry))
        except PydanticValidationError as e:
            raise ValidationError(f'{path}: {e}') from e
    return drafts


def list_items(project, view, ready_only=False):
    items = project.backlog
    if view == 'active':
        selected = sort_items(active_items(items))
    elif view == 'groomable':
        selected = sort_items(groomable_items(items))
    elif view == 'history':
        selected = sort_history(history_items(items))
    else:
        selected = sort_items(sprint_eligible_items(items, ready_only))
        sprints = ', '.join(f'{s.sprint_number} ({s.status.value})' for s in eligible_sprints(project.sprints))
        print_info(f'Open sprints: {sprints or "none"}')

    for item in selected:
        line = f'{item.id:<22} {item.backlog_id:<14} {item.priority.value:<8} {item.title}'
        if view == 'history':
            sprint = f' -> sprint {item.moved_to_sprint}' if item.moved_to_sprint is not None else ''
            line += f'  [{item.history_status.value}{sprint}]'
        print_info(line)


def print_transition_result(result):
    labels = {item.id: item.label for item in result.items}
    for heading, ids in (('Created', result.created_ids), ('Updated', result.changed_ids), ('Removed', result.removed_ids)):
        for item_id in ids:
            print_info(f'{heading}: {labels.get(item_id, item_id)}')
    for warning in result.warnings:
        print_warning(str(warning))


def parse_arguments(arguments):
    parser = argparse.ArgumentParser(prog='sprintlog')
    parser.add_argument('--version', action='version', version=__version__)
    parser.add_argument('--verbose', dest='debug', action='store_true', help='Log engine activity to stderr')
    subparsers = parser.add_subparsers(dest='command', metavar='<command>')

    project_parser = argparse.ArgumentParser(add_help=False)
    project_help = 'Path to the project file (default: project.yml)'
    project_parser.add_argument('-p', '--project', default='project.yml', help=project_help)
    common = [project_parser]

    next_id_help = 'print the next backlog id for the current year'
    subparsers.add_parser('next-id', help=next_id_help, parents=common)

    list_help = 'list backlog items in one of the views'
    list_parser = subparsers.add_parser('list', help=list_help, parents=common)
    list_parser.add_argument('--view', choices=VIEWS, default='active', help='Which view (default: active)')
    list_parser.add_argument('--ready', action='store_true', help='Eligible view: only items ready for a sprint')

    add_help = 'add backlog items from a YAML file of drafts'
    add_parser = subparsers.add_parser('add', help=add_help, parents=common)
    add_parser.add_argument('drafts', help='YAML file with one draft or a list of drafts')

    move_help = 'move backlog items into a Planned or Active sprint'
    move_parser = subparsers.add_parser('move', help=move_help, parents=common)
    move_parser.add_argument('sprint', type=int, help='Target sprint number')
    move_parser.add_argument('items', nargs='+', help='Item ids or backlog ids')

    revert_help = 'take a task out of a sprint and restore its backlog item'
    revert_parser = subparsers.add_parser('revert', help=revert_help, parents=common)
    revert_parser.add_argument('sprint', type=int, help='Sprint number')
    revert_parser.add_argument('task', help='Sprint task id')
    revert_parser.add_argument('--backlog-id', help='Backlog id of the original item (default: the task\'s)')

    split_help = 'split an item into children described in a YAML file'
    split_parser = subparsers.add_parser('split', help=split_help, parents=common)
    split_parser.add_argument('item', help='Item id or backlog id')
    split_parser.add_argument('children', help='YAML file with a list of child drafts')

    merge_help = 'merge two or more items into one'
    merge_parser = subparsers.add_parser('merge', help=merge_help, parents=common)
    merge_parser.add_argument('items', nargs='+', help='Item ids or backlog ids, first one names the result')
    merge_parser.add_argument('-d', '--draft', help='YAML file overriding the merged item fields')

    undo_help = 'undo the split or merge an item belongs to'
    undo_parser = subparsers.add_parser('undo', help=undo_help, parents=common)
    undo_parser.add_argument('item', help='Item id or backlog id of any item of the split or merge')

    delete_help = 'delete an active backlog item'
    delete_parser = subparsers.add_parser('delete', help=delete_help, parents=common)
    delete_parser.add_argument('item', help='Item id or backlog id')

    validate_help = 'check the project file against the backlog invariants'
    validate_parser = subparsers.add_parser('validate', help=validate_help, parents=common)
    validate_parser.add_argument('-s', '--strict', action='store_true', help='Treat warnings as errors')
    validate_parser.add_argument('-v', '--verbose', action='store_true', help='Show warnings')
    validate_parser.add_argument('-q', '--quiet', action='store_true', help='Only set the exit code')

    sync_help = 'export the project to DuckDB for history analytics'
    sync_parser = subparsers.add_parser('sync', help=sync_help, parents=common)
    sync_parser.add_argument('-o', '--output', default='backlog.duckdb', help='Output database path')
    sync_parser.add_argument('--migrate-only', action='store_true', help='Only run migrations')

    return parser.parse_args(arguments)


if __name__ == '__main__':
    main()
