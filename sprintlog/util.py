import sys

import yaml


def print_error(message):
    sys.stderr.write('Error: ' + message + '\n')


def print_warning(message):
    sys.stderr.write('Warning: ' + message + '\n')


def print_info(message):
    sys.stdout.write(message + '\n')


def load_yaml(yaml_filename):
    with open(yaml_filename, 'r', encoding='utf-8') as yaml_file:
        return yaml.safe_load(yaml_file)
