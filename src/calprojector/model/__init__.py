"""
The MODEL layer contains pure data structures and I/O.
It has NO knowledge of the GUI (Qt) or of how projections are computed.
"""
