"""Redis Lua scripts for the counter store.

Each script runs atomically on the server, so concurrent limiters on
different hosts never interleave inside a single check.
"""

# Increment a counter and start its expiry on first use.
# KEYS[1] counter key, ARGV[1] ttl in milliseconds
INCREMENT_AND_EXPIRE_SCRIPT = """
    local current = redis.call('INCR', KEYS[1])
    if current == 1 then
        redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[1]))
    end
    return current
"""

# Prune, insert, count and conditionally revoke in one step.
# Scores strictly below min_score are dropped ('(' makes the bound exclusive).
# The returned count is the one observed right after the insertion.
# KEYS[1] sorted set key
# ARGV[1] member, ARGV[2] score, ARGV[3] min_score, ARGV[4] limit, ARGV[5] ttl ms
RECORD_IN_WINDOW_SCRIPT = """
    local key = KEYS[1]
    local member = ARGV[1]
    local score = ARGV[2]
    local min_score = ARGV[3]
    local limit = tonumber(ARGV[4])
    local ttl = tonumber(ARGV[5])

    redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. min_score)
    redis.call('ZADD', key, score, member)
    local current = redis.call('ZCARD', key)

    if current > limit then
        -- Denied requests must not occupy a slot in the window
        redis.call('ZREM', key, member)
    else
        redis.call('PEXPIRE', key, ttl)
    end
    return current
"""

# Compare-and-set on a string value.
# KEYS[1] value key
# ARGV[1] new value, ARGV[2] expected value, ARGV[3] '1' if a value is
# expected ('0' means the key must be absent), ARGV[4] ttl ms (0 = none)
GET_AND_SET_SCRIPT = """
    local current = redis.call('GET', KEYS[1])
    if ARGV[3] == '1' then
        if current ~= ARGV[2] then
            return 0
        end
    elseif current then
        return 0
    end

    local ttl = tonumber(ARGV[4])
    if ttl > 0 then
        redis.call('SET', KEYS[1], ARGV[1], 'PX', ttl)
    else
        redis.call('SET', KEYS[1], ARGV[1])
    end
    return 1
"""
