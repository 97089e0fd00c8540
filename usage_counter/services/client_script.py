"""Lua bootstrap script handed to game clients.

The client registers once through ``/api/count.js`` with a random session id,
then keeps that session alive through ``/api/heartbeat.js``.  The heartbeat
interval must stay below the server's liveness window.
"""
from __future__ import annotations

from string import Template

_SCRIPT = Template("""\
-- usage-counter client
-- Server: $base_url

local HttpService = game:GetService("HttpService")
local API = "$base_url/api"
local player = game.Players.LocalPlayer
local sessionId = "S_" .. player.UserId .. "_" .. math.random(1000, 9999)

local function get(url)
    return pcall(function()
        return HttpService:RequestAsync({ Url = url, Method = "GET" }).Body
    end)
end

local function register()
    local url = API .. "/count.js?userId=" .. player.UserId
        .. "&playerName=" .. HttpService:UrlEncode(player.Name)
        .. "&sessionId=" .. sessionId
        .. "&gameId=" .. game.GameId
        .. "&time=" .. os.time()
    local ok, body = get(url)
    if not ok then
        warn("usage-counter: registration failed")
        return
    end
    local decoded, data = pcall(function()
        return HttpService:JSONDecode(body)
    end)
    if decoded and data.stats then
        print("usage-counter: total " .. tostring(data.stats.total)
            .. ", online " .. tostring(data.stats.online))
    end
end

local function heartbeat()
    get(API .. "/heartbeat.js?sessionId=" .. sessionId .. "&userId=" .. player.UserId)
end

register()

while true do
    task.wait($interval)
    heartbeat()
end
""")


def render_client_script(base_url: str, heartbeat_interval: int) -> str:
    return _SCRIPT.substitute(base_url=base_url.rstrip("/"), interval=heartbeat_interval)
