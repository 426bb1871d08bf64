"""
   _____            __        __  ________          __
  / ___/____  _____/ /_____  / /_/ ____/ /_  ____ _/ /_
  \__ \/ __ \/ ___/ //_/ _ \/ __/ /   / __ \/ __ `/ __/
 ___/ / /_/ / /__/ ,< /  __/ /_/ /___/ / / / /_/ / /_
/____/\____/\___/_/|_|\___/\__/\____/_/ /_/\__,_/\__/

SocketChat Project - real-time private and group chat over WebSockets.

A socket layer (presence, live group channels, message fan-out) plus a
REST surface sharing one repository and one set of authorization rules.
"""

__version__ = "1.0.0"
