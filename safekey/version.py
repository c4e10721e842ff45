"""SafeKey Meta information.
   SafeKey keeps named secrets in a single password-protected encrypted file.
"""
__title__ = 'safekey'
__description__ = (
   'Local-first secrets vault: a single encrypted file holding named '
   'secrets, protected by a master password.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 SafeKey Contributors'
__author__ = 'SafeKey Contributors'
__author_email__ = 'maintainers@safekey.dev'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/safekey/safekey'
