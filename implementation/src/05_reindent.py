def handler(event):
    payload = event["body"]
    data = json.loads(payload)
    return respond(data)
