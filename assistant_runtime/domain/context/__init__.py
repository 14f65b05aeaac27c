# Context assembly for one assistant turn
#
# +---------------------+     +----------------------+
# |  SessionRegistry    |     |  MemoryStore         |
# |---------------------|     |----------------------|
# | message history     |     | per-session facts    |
# | session flags       |     | (bounded, FIFO)      |
# +---------------------+     +----------------------+
#            \                        /
#             \                      /
#              v                    v
#         +-------------------------------+
#         |        ContextManager         |
#         |-------------------------------|
#         | system prompt                 |
#         | injected memories             |
#         | trimmed conversation          |
#         +-------------------------------+
