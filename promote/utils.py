# This file contains some general purpose utilities to be imported by the
# rest of the promotion program. Most of them are used by the settings
# loader and its validation functions.
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path

import yaml


def yaml_load(path):
    with open(path) as f:
        return yaml.safe_load(f)


def walk_keys(d, parents=()):
    for k, v in d.items():
        if isinstance(v, dict):
            for path in walk_keys(v, parents=(*parents, k)):
                yield path
        else:
            yield (*parents, k, v)


def find_missing(s, xs):
    for x in xs:
        if x not in s:
            yield x


def is_within(path, parent):
    """True if path is parent itself or lives somewhere below it."""
    path = Path(path).resolve()
    parent = Path(parent).resolve()
    return path == parent or parent in path.parents


@contextmanager
def temporary_fs(tree):
    """Given a dictionary representing a file system directory structure,
    return a context manager that creates the corresponding folders and files
    in Python's temporary file location. All created folders and files will
    be deleted when the context manager exits.

    The dictionary should take the shape of a tree of nested dictionaries. The
    "leaves" of the tree (non-dictionary values) will be written to files with
    their key as the file name, otherwise a folder will be created with the
    key as the folder name.

    If a "leaf" if of type 'bytes', it will be written to file as bytes.
    Otherwise, it will be coerced to a string with str() and written to a
    file as a UTF-8 string.
    """
    with tempfile.TemporaryDirectory() as tempdir:

        for path in walk_keys(tree):
            file_data = path[-1]
            file_name = path[-2]
            file_path = path[:-2]
            file_mode = "wb"

            parent = Path(tempdir).joinpath(*file_path)
            os.makedirs(parent, exist_ok=True)

            if not isinstance(file_data, bytes):
                file_mode = "w"
                file_data = str(file_data)

            with open(parent.joinpath(file_name), file_mode) as f:
                f.write(file_data)
        yield Path(tempdir)
