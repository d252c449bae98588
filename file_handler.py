"""
File Handler Module
Encrypted selection workspace files (image, polygon, colors, tolerance)
and the recent files list
"""

import os
import json
import base64
import hashlib
import logging
from cryptography.fernet import Fernet, InvalidToken

WORKSPACE_EXTENSION = '.rcw'
WORKSPACE_VERSION = 1
PASSPHRASE = "RegionRecolorWorkspaceKey"


class FileHandler:
    """Workspace file operations with encryption"""

    def __init__(self, data_dir='data'):
        self.data_dir = data_dir
        self._fernet = Fernet(self._get_encryption_key())

    @staticmethod
    def _get_encryption_key():
        """Consistent Fernet key derived from a fixed passphrase"""
        key = hashlib.sha256(PASSPHRASE.encode()).digest()
        return base64.urlsafe_b64encode(key)

    def _encrypt(self, data_string):
        return self._fernet.encrypt(data_string.encode('utf-8'))

    def _decrypt(self, encrypted_data):
        return self._fernet.decrypt(encrypted_data).decode('utf-8')

    def save_workspace(self, path, workspace_data):
        """
        Save a workspace to an encrypted file

        The file is written to '<path>.tmp' first; an existing file is kept
        as '<path>.bak' until the new one is in place.

        Args:
            path: Target file path
            workspace_data: Dict from ImageEditor.to_workspace()

        Returns:
            True on success
        """
        try:
            if not path:
                raise ValueError("No save path specified")

            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            payload = dict(workspace_data, version=WORKSPACE_VERSION)
            encrypted = self._encrypt(json.dumps(payload, ensure_ascii=False))

            temp_path = path + '.tmp'
            backup_path = path + '.bak'
            try:
                with open(temp_path, 'wb') as f:
                    f.write(encrypted)
                if os.path.exists(path):
                    os.replace(path, backup_path)
                os.replace(temp_path, path)
            except OSError:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                if os.path.exists(backup_path) and not os.path.exists(path):
                    os.replace(backup_path, path)
                raise

            if os.path.exists(backup_path):
                os.remove(backup_path)

            logging.info(f"Saved workspace: {path}")
            return True

        except PermissionError:
            logging.error(f"Save failed: Permission denied for {path}")
            return False
        except OSError as e:
            logging.error(f"Save failed: OS error - {e}")
            return False
        except (TypeError, ValueError) as e:
            logging.error(f"Save failed: {e}")
            return False

    def load_workspace(self, path):
        """
        Load a workspace file

        Returns:
            Workspace dict, or None if the file is missing or unreadable
        """
        try:
            with open(path, 'rb') as f:
                file_data = f.read()
        except FileNotFoundError:
            logging.error(f"File not found: {path}")
            return None
        except OSError as e:
            logging.error(f"Load failed: {e}")
            return None

        try:
            workspace_data = json.loads(self._decrypt(file_data))
        except InvalidToken:
            logging.error(f"Load failed: {path} is not a workspace file or is corrupted")
            return None
        except json.JSONDecodeError:
            logging.error(f"JSON decode error for {path}")
            return None

        if not isinstance(workspace_data, dict):
            logging.error(f"Load failed: unexpected workspace content in {path}")
            return None

        version = workspace_data.pop('version', WORKSPACE_VERSION)
        if isinstance(version, int) and version > WORKSPACE_VERSION:
            logging.warning(f"Workspace {path} was written by a newer version ({version})")

        logging.info(f"Loaded workspace: {path}")
        return workspace_data

    def get_recent_files_path(self):
        return os.path.join(self.data_dir, 'recent_files.dat')

    def load_recent_files(self):
        return self.load_data_file('recent_files.dat', default=[])

    def save_recent_files(self, recent_files):
        return self.save_data_file('recent_files.dat', recent_files)

    def add_recent_file(self, file_path, recent_files, max_recent=10):
        """Move file_path to the front of the list, trimming to max_recent"""
        recent_files = [p for p in recent_files if p != file_path]
        recent_files.insert(0, file_path)
        return recent_files[:max_recent]

    def save_data_file(self, filename, data):
        """Save data to an encrypted .dat file in the data folder"""
        try:
            os.makedirs(self.data_dir, exist_ok=True)

            filepath = os.path.join(self.data_dir, filename)
            if not filepath.endswith('.dat'):
                filepath += '.dat'

            with open(filepath, 'wb') as f:
                f.write(self._encrypt(json.dumps(data, ensure_ascii=False)))

            logging.info(f"Saved data file: {filepath}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logging.error(f"Save data file error: {e}")
            return False

    def load_data_file(self, filename, default=None):
        """Load data from an encrypted .dat file, or default if unavailable"""
        filepath = os.path.join(self.data_dir, filename)
        if not filepath.endswith('.dat'):
            filepath += '.dat'

        if not os.path.exists(filepath):
            return default

        try:
            with open(filepath, 'rb') as f:
                data = json.loads(self._decrypt(f.read()))
            logging.info(f"Loaded data file: {filepath}")
            return data
        except (OSError, InvalidToken, json.JSONDecodeError) as e:
            logging.error(f"Load data file error: {filepath}: {e!r}")
            return default
