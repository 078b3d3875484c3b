import abc
import os
import subprocess

from collections import namedtuple

from fabric import Connection, Config
from invoke.exceptions import CommandTimedOut
from logzero import logger
from paramiko import AuthenticationException

from chaosnetem.common import DEFAULT_CHAOS_COMMAND_TIMEOUT


class Result(namedtuple('Result', ['return_code', 'stdout', 'stderr'])):
    __slots__ = ()

    @property
    def output(self) -> str:
        """stdout and stderr combined, the way the tools print them."""
        return (self.stdout or "") + (self.stderr or "")


class ExecutionTimeout(Exception):
    pass


class CommandExecutor(object, metaclass=abc.ABCMeta):

    def execute(self, action: str, as_sudo=False,
                timeout=DEFAULT_CHAOS_COMMAND_TIMEOUT, **kwargs) -> Result:
        logger.debug("executing >%s< as_sudo=%s timeout=%s", action, as_sudo,
                     timeout)
        rtn = self._execute(action, as_sudo=as_sudo, timeout=timeout, **kwargs)
        logger.debug("return_code: %s", rtn.return_code)
        return rtn

    @abc.abstractmethod
    def _execute(self, action: str, as_sudo=False,
                 timeout=DEFAULT_CHAOS_COMMAND_TIMEOUT) -> Result:
        raise NotImplementedError('users must define _execute to use this base class')


class LocalExecutor(CommandExecutor):
    """
    Run commands on this host through /bin/bash.

    stderr is merged into stdout so that Result.stdout holds the combined
    output in the order the command printed it.
    """
    shell = "/bin/bash"

    def _execute(self, action: str, as_sudo=False,
                 timeout=DEFAULT_CHAOS_COMMAND_TIMEOUT) -> Result:
        if as_sudo:
            action = "sudo {}".format(action)
        try:
            completed = subprocess.run([self.shell, "-c", action],
                                       stdout=subprocess.PIPE,
                                       stderr=subprocess.STDOUT,
                                       universal_newlines=True,
                                       timeout=timeout)
        except subprocess.TimeoutExpired:
            raise ExecutionTimeout("Local execution of >{}< has exceeded "
                                   "timeout of {}s".format(action, timeout))
        return Result(completed.returncode, completed.stdout, "")


class FabricExecutor(CommandExecutor):
    """
    Run commands on a remote node over SSH.

    Used when the chaos helper does not run on the node that hosts the target
    container.
    """
    config = None

    def __init__(self, host: str, user: str = None, ssh_config_file=None,
                 identity_file=None):
        self.host = host
        self.user = user
        self.config = FabricExecutor._create_config(ssh_config_file=ssh_config_file)
        self.connect_kwargs = FabricExecutor._collect_connect_kwargs(identity_file)

    @staticmethod
    def _create_config(ssh_config_file=None):
        if ssh_config_file:
            FabricExecutor._is_readable_file(ssh_config_file, 'ssh_config')
        return Config(runtime_ssh_path=ssh_config_file)

    @staticmethod
    def _is_readable_file(path, file_kind):
        if not isinstance(path, str):
            raise ValueError("path to file must be a string")

        if os.access(path, os.R_OK):
            if os.path.isfile(path):
                return
            else:
                raise OSError("Path is not to a file -- '%s'" % str(path))
        else:
            raise OSError("Unable to access the file (not readable) -- %s -- '%s'" % (file_kind, path))

    @staticmethod
    def _collect_connect_kwargs(identity_file):
        connect_kwargs = {}

        if identity_file:
            FabricExecutor._is_readable_file(identity_file, 'identity_file')
            connect_kwargs['key_filename'] = identity_file

        if not connect_kwargs:
            connect_kwargs = None

        return connect_kwargs

    def _execute(self, action: str, as_sudo=False,
                 timeout=DEFAULT_CHAOS_COMMAND_TIMEOUT) -> Result:
        try:
            with Connection(self.host, config=self.config, user=self.user,
                            connect_kwargs=self.connect_kwargs) as c:
                # warn=True: a non-zero exit is reported, not raised
                if as_sudo:
                    rtn = c.sudo(action, hide=True, warn=True, timeout=timeout)
                else:
                    rtn = c.run(action, hide=True, warn=True, timeout=timeout)
        except AuthenticationException as e:
            logger.error("Failed to authenticate to %s", self.host)
            raise e
        except CommandTimedOut:
            raise ExecutionTimeout("Remote execution of >{}< on {} has "
                                   "exceeded timeout of {}s".format(
                                       action, self.host, timeout))

        return Result(rtn.return_code, rtn.stdout, rtn.stderr)


def get_executor(ssh_host: str = None, ssh_config_file: str = None,
                 ssh_user: str = None,
                 identity_file: str = None) -> CommandExecutor:
    """
    Pick the executor for the tool chain: local unless an SSH host is given.

    ssh_config_file and identity_file must be readable files. OSError is
    raised otherwise.
    """
    if ssh_host:
        if ssh_config_file:
            ssh_config_file = os.path.expanduser(ssh_config_file)
        if identity_file:
            identity_file = os.path.expanduser(identity_file)
        return FabricExecutor(ssh_host, user=ssh_user,
                              ssh_config_file=ssh_config_file,
                              identity_file=identity_file)
    return LocalExecutor()
