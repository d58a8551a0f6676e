#!/usr/bin/env python3
# -*- coding: utf-8 -*-

__version__ = '1.2.0'

# IMPORTS
import sys
import os
import subprocess
import re
import logging
import logging.handlers
import argparse
import plistlib
import time
from configparser import ConfigParser
from datetime import datetime
from xml.parsers.expat import ExpatError

# CONSTANTS
log_name = 'dsMobileToLocal.log'
log_format = '%(asctime)s - %(message)s'
syslog_socket = '/var/run/syslog'
syslog_tag = 'dsMobileToLocal'
backup_path = '/var/root/user_backups'
directory_daemon = 'opendirectoryd'
staff_group = 'staff'
staff_group_id = '20'
admin_group = 'admin'
admin_policies = ['demote', 'preserve', 'demote-if-ad']
no_console_users = ['loginwindow', 'root', '_mbsetupuser', None, '']
# AD-specific attributes removed from converted accounts
ad_attributes = [
    'SMBSID',
    'SMBPrimaryGroupSID',
    'SMBScriptPath',
    'SMBPasswordLastSet',
    'SMBGroupRID',
    'PrimaryNTDomain',
    'OriginalAuthenticationAuthority',
    'OriginalNodeName',
    'AppleMetaRecordName',
    'cached_groups',
    'cached_auth_policy',
    'CopyTimestamp',
    'AltSecurityIdentities',
    'MCXSettings',
    'MCXFlags',
]
unwanted_authority_markers = ['Kerberosv5', 'LocalCachedUser']
shadowhash_marker = ';ShadowHash;'
ad_node_marker = '/Active Directory/'
domain_separators = ['\\', '/', '@']
account_states = ['Unclassified', 'Local', 'Snapshotted', 'Stripped', 'DaemonRestarted', 'Reconciled', 'Terminal']


class AccountRecord:
    """A local user account and where it stands in the conversion"""

    def __init__(self, username, uid=None, home=None, primary_group_id=None, authentication_authority=None,
                 is_ad=False, attributes=None):
        self.username = username
        self.attributes = dict(attributes or {})
        self.uid = uid
        self.home = home
        self.primary_group_id = primary_group_id
        self.authentication_authority = list(authentication_authority or [])
        self.groups = []
        self.is_admin = False
        self.is_ad = is_ad
        self.state = 'Unclassified'

    @classmethod
    def from_record(cls, username, record):
        return cls(username,
                   uid=first_value(record, 'UniqueID'),
                   home=first_value(record, 'NFSHomeDirectory'),
                   primary_group_id=first_value(record, 'PrimaryGroupID'),
                   authentication_authority=record.get('AuthenticationAuthority', []),
                   is_ad=is_ad_account(record),
                   attributes=record)

    def set_state(self, state):
        if state not in account_states:
            raise ValueError('Unknown account state: %s' % state)
        logging.debug('%s: %s -> %s', self.username, self.state, state)
        self.state = state

    def __repr__(self):
        return '<AccountRecord %s uid=%s state=%s>' % (self.username, self.uid, self.state)


class PermissionSnapshot:
    """Group and admin state of a user, saved before the account is changed.

    The backup directory holds, per username:
        <username>.groups         one group name per line, sorted
        <username>.admin          marker: had admin, admin is preserved
        <username>.admin.removed  marker: had admin, admin will be removed
        <username>.acls           ls -le listing of the home directory
        <username>.converted      marker: conversion ran to completion

    A .groups file without a .converted marker belongs to an interrupted conversion.
    """

    def __init__(self, username, groups, had_admin, acl_listing=None):
        self.username = username
        self.groups = tuple(sorted(set(groups)))
        self.had_admin = had_admin
        self.acl_listing = acl_listing

    def save(self, backup_dir, admin_marker):
        logging.info('Saving permission state for %s to %s', self.username, backup_dir)
        os.makedirs(backup_dir, exist_ok=True)
        base_path = os.path.join(backup_dir, self.username)
        with open(base_path + '.groups', 'w') as groups_file:
            groups_file.write(''.join(group + '\n' for group in self.groups))
        marker_path = base_path + admin_marker
        if self.had_admin:
            open(marker_path, 'a').close()
        elif os.path.exists(marker_path):
            # Stale marker from an earlier run
            os.remove(marker_path)
        if self.acl_listing is not None:
            with open(base_path + '.acls', 'w') as acls_file:
                acls_file.write(self.acl_listing)

    @classmethod
    def load(cls, backup_dir, username):
        """Load a saved snapshot, or None if there is no backup for username"""
        base_path = os.path.join(backup_dir, username)
        if not os.path.exists(base_path + '.groups'):
            return None
        with open(base_path + '.groups') as groups_file:
            groups = [line.strip() for line in groups_file if line.strip()]
        had_admin = os.path.exists(base_path + '.admin') or os.path.exists(base_path + '.admin.removed')
        acl_listing = None
        if os.path.exists(base_path + '.acls'):
            with open(base_path + '.acls') as acls_file:
                acl_listing = acls_file.read()
        return cls(username, groups, had_admin, acl_listing)

    @staticmethod
    def is_converted(backup_dir, username):
        return os.path.exists(os.path.join(backup_dir, username + '.converted'))

    @staticmethod
    def set_converted(backup_dir, username, converted=True):
        marker_path = os.path.join(backup_dir, username + '.converted')
        if converted:
            os.makedirs(backup_dir, exist_ok=True)
            open(marker_path, 'a').close()
        elif os.path.exists(marker_path):
            os.remove(marker_path)

    @classmethod
    def load_interrupted(cls, backup_dir, username):
        """Load the snapshot of a conversion that never finished, None if there isn't one"""
        if cls.is_converted(backup_dir, username):
            return None
        return cls.load(backup_dir, username)


def parse_arguments(argv=None):
    """Parse arguments"""
    parser = argparse.ArgumentParser(
            description='Convert Active Directory mobile accounts on a Mac to local accounts.')
    parser.add_argument('--admin-policy', choices=admin_policies, default='preserve',
                        help='what happens to admin membership of converted users (default: preserve).')
    parser.add_argument('--backup', metavar='PATH', default=backup_path,
                        help='directory for permission backups (%s is default).' % backup_path)
    parser.add_argument('-d', '--debug', action='store_true',
                        help='log all debugging info to log file.')
    parser.add_argument('--demote', action='store_true',
                        help='only remove the user(s) from the admin group.')
    parser.add_argument('-f', '--file', metavar='filename',
                        help='read setting from file.')
    parser.add_argument('--log', metavar='PATH',
                        help='path to log directory (/var/log is default).')
    parser.add_argument('--promote', action='store_true',
                        help='only add the user(s) to the admin group.')
    parser.add_argument('--recon', action='store_true',
                        help='run jamf recon when finished.')
    parser.add_argument('--timeout', metavar='SECONDS', type=int, default=60,
                        help='how long to wait for directory services to restart (60 is default).')
    parser.add_argument('--unbind', action='store_true',
                        help='remove the Active Directory binding before converting.')
    parser.add_argument('-v', '--verbose', action='store_true', help='verbose output.')
    parser.add_argument('usernames', nargs='*', help='users to convert (console user is default).')
    args = parser.parse_args(argv)

    if args.log is None:
        log_path = '/var/log/' + log_name
    else:
        # Log file directory specified in args
        log_path = os.path.join(args.log, log_name)
    setup_logging(log_path, args.debug, args.verbose)
    logging.info('### Logging started at: %s', datetime.now())

    # Try to load preferences from file
    if args.file is not None:
        if not os.path.exists(args.file):
            # Settings file not found
            logging.critical('Missing settings file at: %s', args.file)
            sys.exit(1)
        args = load_preferences(args)
        if args.debug:
            logging.getLogger().setLevel(level=logging.DEBUG)

    # Error-checking on arguments
    if args.promote and args.demote:
        logging.critical('Either specify promote or demote.')
        sys.exit(1)
    if args.admin_policy not in admin_policies:
        logging.critical('Unknown admin policy: %s', args.admin_policy)
        sys.exit(1)
    if args.timeout < 1:
        logging.critical('Timeout must be at least one second: %s', args.timeout)
        sys.exit(1)
    return args


def setup_logging(log_path, debug=False, verbose=False):
    """Log to file, stdout (picked up by Jamf policy logs) and syslog when available"""
    if debug:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(filename=log_path, level=level, format=log_format)
    logger = logging.getLogger()
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(log_format))
    if not verbose:
        console.setLevel(logging.INFO)
    logger.addHandler(console)
    if os.path.exists(syslog_socket):
        syslog = logging.handlers.SysLogHandler(address=syslog_socket)
        syslog.setFormatter(logging.Formatter(syslog_tag + ': %(message)s'))
        logger.addHandler(syslog)


def load_preferences(args):
    """Load preferences file and return as args namespace"""
    logging.info('Loading preferences: %s', args.file)
    parser = ConfigParser()
    parser.read(args.file)
    # Parse sections
    for next_section in parser.sections():
        if next_section == 'general':
            # No section prefix for general
            prefix = ''
        else:
            # Section prefix
            prefix = next_section + '_'
        # Parse items
        for next_item in parser.items(next_section):
            next_name = (prefix + next_item[0]).replace('-', '_')
            if next_item[1].lower() == 'true':
                next_value = True
            elif next_item[1].lower() == 'false':
                next_value = False
            elif next_item[1].lower() == 'none':
                next_value = None
            elif next_name == 'usernames':
                # Put usernames in list
                next_value = [username.strip() for username in next_item[1].split(',') if username.strip()]
            elif next_name == 'timeout':
                try:
                    next_value = int(next_item[1])
                except ValueError:
                    logging.critical('Timeout must be a number of seconds: %s', next_item[1])
                    sys.exit(1)
            else:
                next_value = next_item[1]
            setattr(args, next_name, next_value)
    return args


def execute_command(command):
    """Execute system command"""
    logging.debug('executeCommand: %s', ' '.join(command))
    try:
        result = subprocess.check_output(command, universal_newlines=True)
        logging.debug('Result: %s', result)
    except subprocess.CalledProcessError as error:
        logging.error('Return code: %s.', error.returncode)
        logging.error('Output: %s.', error.output)
    except OSError as error:
        logging.critical('OS Error: #%s: %s', error.errno, error.strerror)
        sys.exit(1)
    else:
        return result


def command_succeeds(command):
    """Execute system command used as a test, returning True on exit status 0"""
    logging.debug('checkCommand: %s', ' '.join(command))
    try:
        subprocess.check_output(command, stderr=subprocess.STDOUT)
    except subprocess.CalledProcessError as error:
        logging.debug('Return code: %s.', error.returncode)
        return False
    except OSError as error:
        logging.critical('OS Error: #%s: %s', error.errno, error.strerror)
        sys.exit(1)
    return True


def poll(check, timeout, interval=1):
    """Call check until it returns True, giving up after timeout seconds"""
    attempts = max(int(timeout // interval), 1)
    for attempt in range(attempts):
        if check():
            return True
        logging.debug('Waiting %s seconds (attempt %s of %s)', interval, attempt + 1, attempts)
        time.sleep(interval)
    return False


def get_console_user():
    from SystemConfiguration import SCDynamicStoreCopyConsoleUser
    username = (SCDynamicStoreCopyConsoleUser(None, None, None) or [None])[0]
    if username in no_console_users:
        username = ''
    logging.debug('Console user: %s', username)
    return username


def parse_record(result):
    """Parse dscl -plist output into a dictionary of attribute name to list of values.

    dscl prefixes attribute names with their type (dsAttrTypeStandard:, dsAttrTypeNative:),
    the prefix is dropped so standard and native attributes are looked up the same way.
    """
    try:
        plist = plistlib.loads(result.encode('utf-8'))
    except (plistlib.InvalidFileException, ExpatError, ValueError) as error:
        logging.error('Unable to parse directory record: %s', error)
        return None
    record = {}
    for key, values in plist.items():
        name = key.rpartition(':')[2]
        if not isinstance(values, list):
            values = [values]
        record[name] = [str(value) for value in values]
    return record


def first_value(record, attribute):
    values = record.get(attribute) or [None]
    return values[0]


def read_user_record(username):
    """Read a local user record, None if it can't be read"""
    result = execute_command(['dscl', '-plist', '.', '-read', '/Users/' + username])
    if result is None:
        return None
    return parse_record(result)


def read_user_attribute(username, attribute):
    """Read the first value of one attribute of a local user, None if absent"""
    result = execute_command(['dscl', '-plist', '.', '-read', '/Users/' + username, attribute])
    if result is None:
        return None
    record = parse_record(result)
    if record is None:
        return None
    return first_value(record, attribute)


def delete_user_attribute(username, attribute, value=None):
    command = ['dscl', '.', '-delete', '/Users/' + username, attribute]
    if value is not None:
        command.append(value)
    return execute_command(command) is not None


def create_user_attribute(username, attribute, value):
    command = ['dscl', '.', '-create', '/Users/' + username, attribute, value]
    return execute_command(command) is not None


def get_user_groups(username):
    """Sorted names of all groups the user is a member of, None if they can't be read"""
    result = execute_command(['id', '-Gn', username])
    if result is None:
        return None
    return sorted(result.split())


def is_group_member(username, group):
    return command_succeeds(['dseditgroup', '-o', 'checkmember', '-m', username, group])


def add_to_group(username, group):
    return execute_command(['dseditgroup', '-o', 'edit', '-a', username, '-t', 'user', group]) is not None


def remove_from_group(username, group):
    return execute_command(['dseditgroup', '-o', 'edit', '-d', username, '-t', 'user', group]) is not None


def directory_service_running():
    return command_succeeds(['pgrep', '-x', directory_daemon])


def directory_service_responding():
    return directory_service_running() and command_succeeds(['dscl', '.', '-list', '/Users'])


def restart_directory_service(timeout=60, interval=2):
    """Restart opendirectoryd and wait until it answers again"""
    logging.info('Restarting directory services')
    execute_command(['killall', directory_daemon])
    # launchd starts opendirectoryd again on demand
    if poll(directory_service_responding, timeout, interval):
        logging.info('Directory services are running')
        return True
    logging.error('Directory services did not come back within %s seconds', timeout)
    return False


def ds_get_nodes(search_node='/Search'):
    """Get the Directory Services search path nodes, keyed by node type"""
    logging.info('Get Directory Services nodes')
    result = execute_command(['dscl', '-plist', search_node, '-read', '/', 'CSPSearchPath'])
    if result is None:
        logging.critical('Directory service unavailable: unable to read %s', search_node)
        sys.exit(1)
    record = parse_record(result) or {}
    nodes = {}
    for node_path in record.get('CSPSearchPath', []):
        if node_path.startswith('/Local/'):
            node_type = 'Local'
        elif node_path.startswith('/LDAPv3/'):
            node_type = 'LDAP'
        elif node_path.startswith(ad_node_marker):
            node_type = 'AD'
        else:
            logging.warning('Unknown node type: %s', node_path)
            continue
        nodes[node_type] = node_path
    logging.debug(nodes)
    return nodes


def remove_ad_binding():
    """Unbind from Active Directory and take the AD node out of the search paths"""
    logging.info('Removing Active Directory binding...')
    nodes = ds_get_nodes()
    if 'AD' not in nodes:
        logging.info('Not bound to Active Directory')
        return False
    ad_node = nodes['AD']
    if execute_command(['dsconfigad', '-remove', '-force', '-u', 'none', '-p', 'none']) is None:
        logging.critical('Failed to remove Active Directory binding: %s', ad_node)
        sys.exit(1)
    for search_node in ['/Search', '/Search/Contacts']:
        execute_command(['dscl', search_node, '-delete', '/', 'CSPSearchPath', ad_node])
        execute_command(['dscl', search_node, '-change', '/', 'SearchPolicy', 'dsAttrTypeStandard:CSPSearchPath',
                         'dsAttrTypeStandard:NSPSearchPath'])
    execute_command(['dscacheutil', '-flushcache'])
    logging.info('AD binding has been removed.')
    return True


def fv_list():
    logging.info('Getting FileVault list')
    result = execute_command(['fdesetup', 'status'])
    if result is None or 'Off' in result:
        return []
    result = execute_command(['fdesetup', 'list'])
    if result is None:
        return []
    return re.findall(r'(.*),', result)


def jamf_recon():
    """Update Jamf inventory if the jamf binary is installed"""
    jamf_binary = execute_command(['which', 'jamf'])
    if jamf_binary is None:
        jamf_binary = '/usr/local/bin/jamf'
    else:
        jamf_binary = jamf_binary.strip()
    if not os.path.exists(jamf_binary):
        logging.info('Jamf binary not found, skipping inventory update')
        return False
    logging.info('Running Jamf recon to update inventory')
    return execute_command([jamf_binary, 'recon']) is not None


def is_ad_account(record):
    """An account is AD bound if it has an SMBSID or an Active Directory authentication authority"""
    if first_value(record, 'SMBSID'):
        return True
    for authority in record.get('AuthenticationAuthority', []):
        if ad_node_marker in authority:
            return True
    return False


def classify(username):
    logging.info('Checking account type of %s', username)
    record = read_user_record(username)
    if record is None:
        if not directory_service_running():
            logging.critical('Directory service unavailable: %s is not running', directory_daemon)
        else:
            logging.critical('Directory service unavailable: unable to read user record for %s', username)
        sys.exit(1)
    return AccountRecord.from_record(username, record)


def unwanted_authorities(authorities):
    """Kerberos and cached user entries of an AuthenticationAuthority list"""
    return [authority for authority in authorities
            if any(marker in authority for marker in unwanted_authority_markers)]


def shadowhash_authority(authorities):
    for authority in authorities:
        if shadowhash_marker in authority:
            return authority
    return None


def admin_marker(admin_policy):
    if admin_policy == 'preserve':
        return '.admin'
    return '.admin.removed'


def save_permission_state(account, backup_dir, admin_policy):
    """Snapshot groups, admin membership and home ACLs before anything is changed"""
    username = account.username
    groups = get_user_groups(username)
    if groups is None:
        logging.critical('Unable to read group memberships of %s, nothing has been changed', username)
        sys.exit(1)
    had_admin = is_group_member(username, admin_group)
    if had_admin and admin_policy == 'preserve':
        logging.info('%s has admin privileges, saving this information', username)
    elif had_admin:
        logging.info('%s has admin privileges, this will be REMOVED', username)
    else:
        logging.info('%s does not have admin privileges', username)
    acl_listing = None
    if account.home and os.path.isdir(account.home):
        logging.info('Saving ACLs for %s', account.home)
        acl_listing = execute_command(['ls', '-le', account.home])

    previous = PermissionSnapshot.load_interrupted(backup_dir, username)
    if previous is not None:
        # An interrupted run already captured the original groups; admin state is always current
        logging.info('Merging existing backup for %s', username)
        groups = list(previous.groups) + groups
        if acl_listing is None:
            acl_listing = previous.acl_listing
    snapshot = PermissionSnapshot(username, groups, had_admin, acl_listing)
    snapshot.save(backup_dir, admin_marker(admin_policy))
    PermissionSnapshot.set_converted(backup_dir, username, False)
    account.groups = list(snapshot.groups)
    account.is_admin = had_admin
    return snapshot


def strip_ad_attributes(username, record):
    """Delete the AD attributes present in record, returning the names deleted"""
    logging.info('Removing AD attributes for %s', username)
    removed = []
    for attribute in ad_attributes:
        if attribute not in record:
            logging.debug('%s not present for %s', attribute, username)
            continue
        if delete_user_attribute(username, attribute):
            removed.append(attribute)
        else:
            logging.warning('Unable to delete %s for %s', attribute, username)
    return removed


def migrate_authentication_authority(username, authorities):
    """Remove Kerberos and cached user authorities, leaving the ShadowHash entry in place"""
    logging.info('Migrating password for %s...', username)
    for authority in unwanted_authorities(authorities):
        logging.debug('Removing authentication authority: %s', authority)
        if not delete_user_attribute(username, 'AuthenticationAuthority', authority):
            logging.warning('Unable to remove authentication authority %s for %s', authority, username)
    if shadowhash_authority(authorities):
        logging.info('Preserving password hash for %s', username)
    else:
        logging.warning('No ShadowHash authentication authority for %s, password must be reset', username)


def restorable_groups(groups):
    """Groups from a snapshot that should be given back to a converted account"""
    restorable = []
    for group in groups:
        if not group or group in (staff_group, admin_group):
            continue
        if any(separator in group for separator in domain_separators):
            logging.debug('Skipping directory group: %s', group)
            continue
        if group.isdigit() or 'conflict' in group.lower():
            logging.debug('Skipping unresolved group: %s', group)
            continue
        restorable.append(group)
    return restorable


def reconcile(account, snapshot):
    """Fix primary group, home ownership and group memberships of a converted account"""
    username = account.username
    # Cached name lookups can't be trusted right after the restart
    uid = read_user_attribute(username, 'UniqueID')
    if uid is None:
        logging.critical('Directory service unavailable: unable to read UniqueID for %s', username)
        sys.exit(1)
    account.uid = uid

    primary_group_id = read_user_attribute(username, 'PrimaryGroupID')
    if primary_group_id != staff_group_id:
        logging.info('Changing primary group of %s from %s to staff', username, primary_group_id)
        if create_user_attribute(username, 'PrimaryGroupID', staff_group_id):
            primary_group_id = staff_group_id
        else:
            logging.warning('Unable to set primary group for %s', username)
    account.primary_group_id = primary_group_id

    if account.home and os.path.isdir(account.home):
        logging.info('Updating home folder permissions for %s', username)
        execute_command(['chown', '-R', uid + ':' + staff_group_id, account.home])
    else:
        logging.info('Home directory not found for %s', username)

    logging.info('Adding %s to the staff group', username)
    if not add_to_group(username, staff_group):
        logging.warning('Unable to add %s to the staff group', username)

    restored = []
    for group in restorable_groups(snapshot.groups):
        logging.info('Restoring group: %s for %s', group, username)
        if add_to_group(username, group):
            restored.append(group)
        else:
            logging.warning('Unable to restore group %s for %s', group, username)

    account.groups = get_user_groups(username) or []
    logging.info('User and group info for %s: %s', username, (execute_command(['id', username]) or '').strip())
    return restored


def promote_to_admin(username):
    if is_group_member(username, admin_group):
        logging.info('%s is already an admin.', username)
        return False
    logging.info('Adding %s to admin group...', username)
    if not add_to_group(username, admin_group):
        logging.critical('Failed to add %s to admin group.', username)
        sys.exit(1)
    logging.info('Successfully added %s to admin group.', username)
    return True


def demote_from_admin(username):
    if not is_group_member(username, admin_group):
        logging.info('%s is not an admin. Nothing to demote.', username)
        return False
    logging.info('%s is an admin. Removing from admin group...', username)
    if not remove_from_group(username, admin_group):
        logging.critical('Failed to remove %s from admin group.', username)
        sys.exit(1)
    logging.info('Successfully removed %s from admin group.', username)
    return True


def apply_admin_policy(account, admin_policy):
    if admin_policy == 'demote' or (admin_policy == 'demote-if-ad' and account.is_ad):
        demote_from_admin(account.username)
    else:
        logging.info('Admin policy %s: leaving admin membership of %s unchanged', admin_policy, account.username)
    account.is_admin = is_group_member(account.username, admin_group)


def convert_user(username, args):
    """Convert one user, returning its AccountRecord in the Terminal state"""
    account = classify(username)
    if not account.is_ad:
        snapshot = PermissionSnapshot.load_interrupted(args.backup, username)
        if snapshot is None:
            logging.info('%s is not an AD mobile account', username)
            account.set_state('Local')
            apply_admin_policy(account, args.admin_policy)
            account.set_state('Terminal')
            return account
        # AD markers are gone but the last conversion never finished
        logging.info('Resuming interrupted conversion of %s from backup', username)
        account.is_ad = True
        account.is_admin = snapshot.had_admin
    else:
        logging.info('%s is an AD mobile account. Converting to a local account.', username)
        snapshot = save_permission_state(account, args.backup, args.admin_policy)
        account.set_state('Snapshotted')

        if username in fv_list():
            logging.info('%s has FileVault access', username)

    # Strips whatever an interrupted run left behind as well
    strip_ad_attributes(username, account.attributes)
    migrate_authentication_authority(username, account.authentication_authority)
    account.set_state('Stripped')
    return finish_conversion(account, snapshot, args)


def finish_conversion(account, snapshot, args):
    """Restart directory services, reconcile and apply the admin policy to a stripped account"""
    username = account.username
    if not restart_directory_service(args.timeout):
        logging.critical('Directory service unavailable after restart, stopping conversion of %s', username)
        sys.exit(1)
    account.set_state('DaemonRestarted')

    reconcile(account, snapshot)
    account.set_state('Reconciled')

    apply_admin_policy(account, args.admin_policy)
    PermissionSnapshot.set_converted(args.backup, username)
    account.set_state('Terminal')
    logging.info('%s converted to a local account', username)
    return account


def convert_users(usernames, args):
    """Convert users one at a time; a directory restart affects every account"""
    accounts = []
    for username in usernames:
        accounts.append(convert_user(username, args))
    return accounts


def main(argv=None):
    """ main function
    :return:
    """

    args = parse_arguments(argv)
    logging.info('********* Running dsMobileToLocal %s *********', __version__)
    if os.getuid() != 0:
        logging.critical('You must run this script with administrator privileges.')
        sys.exit(1)

    usernames = args.usernames
    if not usernames:
        console_user = get_console_user()
        if not console_user:
            logging.info('No user logged in or setup user active, exiting.')
            sys.exit(0)
        logging.info('Current logged in user: %s', console_user)
        usernames = [console_user]

    try:
        if args.promote:
            for username in usernames:
                promote_to_admin(username)
        elif args.demote:
            for username in usernames:
                demote_from_admin(username)
        else:
            if args.unbind:
                remove_ad_binding()
            convert_users(usernames, args)
        if args.recon:
            jamf_recon()
    finally:
        logging.info('### EXIT ###')


# MAIN
if __name__ == '__main__':
    main()
    sys.exit(0)
