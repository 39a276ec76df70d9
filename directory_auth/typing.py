"""
Type aliases for the python-ldap data structures this package passes around.
"""

AttributeValue = str | bytes
AttributeValues = AttributeValue | list[AttributeValue] | None
LDAPData = tuple[str, dict[str, list[bytes]]]
ModifyModlistEntry = tuple[int, str, list[bytes] | None]
ModifyModlist = list[ModifyModlistEntry]
AddModlist = list[tuple[str, list[bytes]]]
