"""
Operator input for the interactive setup.
The keyboard listener needs a display/input backend, import it from
so101_teleop.inputs.keyboard_listener where it is used.
"""
