def handler(event):
    try:
        payload = event["body"]
        data = json.loads(payload)
    except KeyError:
        return respond({})
    return respond(data)
