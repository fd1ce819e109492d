import contextlib
import errno


class HdfsioError(Exception):
    '''Base class of all errors raised by hdfsio

    Each concrete error also derives from the builtin exception that
    describes the same failure, so ``except FileNotFoundError`` keeps
    working for callers that do not know about this module.

    '''
    pass


class InvalidPath(HdfsioError, ValueError):
    pass


class FilesystemUnavailable(HdfsioError, OSError):
    '''The filesystem for a path could not be resolved or connected'''
    pass


class PathNotFound(HdfsioError, FileNotFoundError):
    pass


class PermissionDenied(HdfsioError, PermissionError):
    pass


class AlreadyExists(HdfsioError, FileExistsError):
    pass


class FormatError(HdfsioError, ValueError):
    '''Malformed or unsupported binary record file'''
    pass


def _classify(e: OSError):
    if isinstance(e, FileNotFoundError) or e.errno == errno.ENOENT:
        return PathNotFound
    elif isinstance(e, NotADirectoryError) or e.errno == errno.ENOTDIR:
        # A path below a regular file does not exist
        return PathNotFound
    elif isinstance(e, PermissionError) or e.errno in (errno.EACCES,
                                                       errno.EPERM):
        return PermissionDenied
    elif isinstance(e, FileExistsError) or e.errno == errno.EEXIST:
        return AlreadyExists
    return None


@contextlib.contextmanager
def translate_errors(path=None):
    '''Re-raises builtin I/O errors as hdfsio errors

    Errors which are already part of the taxonomy, and ``OSError``s
    that do not map onto it, propagate unchanged.
    '''
    try:
        yield
    except HdfsioError:
        raise
    except OSError as e:
        cls = _classify(e)
        if cls is None:
            raise
        msg = e.strerror or str(e)
        if path is not None:
            msg = '{}: {}'.format(msg, path)
        raise cls(msg) from e
