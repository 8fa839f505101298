"""
Mirror Module — Keep the secondary login store in step with the primary.

Components:
- checksum: order-independent fingerprint of the primary store
- compat: records the secondary store is known to mishandle
- migrator: checksum-gated full reload (RollingMigrator)
- change_mirror: live replay of mutation events (ChangeMirror)
- activation: lifecycle state machine (ActivationController)
"""
