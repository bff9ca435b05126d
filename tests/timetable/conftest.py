"""Timetable markup fixture shaped like the station's streaming page."""

import pytest

STREAMING_HTML = """\
<html><body>
<table class="timetb-ag">
  <thead>
    <tr><th>時間</th><td>月曜日</td><td>火 曜 日</td></tr>
  </thead>
  <tbody>
    <tr>
      <th>6:00</th>
      <td class="bg-f" rowspan="2">
        <div class="time">6:00</div>
        <div class="title-p"><a href="http://example.com/morning">Morning</a></div>
        <div class="rp">Alice</div>
        <img src="/img/icon_m.gif">
      </td>
      <td class="bg-f"><div class="time">6:00</div><div class="title-p">Tuesday　Show</div></td>
    </tr>
    <tr>
      <th>6:30</th>
      <td class="bg-l"><div class="time">7:00</div><div class="title-p">LiveTalk</div></td>
      <td class="bg-f" rowspan="3"><div class="time">6:30</div><div class="title-p">Long</div></td>
    </tr>
    <tr>
      <th>7:00</th>
      <td class="bg-etc" rowspan="2"></td>
    </tr>
    <tr>
      <th>24:30</th>
      <td><div class="time">24:30</div><div class="title-p">LateRepeat</div></td>
    </tr>
  </tbody>
</table>
</body></html>
"""


@pytest.fixture
def streaming_html() -> str:
    return STREAMING_HTML
