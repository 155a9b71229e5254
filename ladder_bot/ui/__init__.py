"""
UI Module - Discord UI Components

Buttons, modals and select menus for the ladder. Persistent buttons are
routed by custom id (see views.parse_custom_id); ephemeral pickers and
modals carry their own callbacks.
"""
