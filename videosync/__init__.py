"""
videosync
~~~~~~~~~

一个主持人推流、多名观众同步观看的放映室后端。
"""
