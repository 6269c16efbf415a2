"""Relay of predict/run requests from sketches to the Replicate API"""

import logging

from managers.export_manager import ensure_dir, export_outputs, output_urls
from models.options import ReplicateOptions
from models.request import PredictRequest, RunRequest
from handlers.helpers import prefix, ssam_log, ssam_warn

logger = logging.getLogger("ssam-replicate")

PREDICT_REQUEST = "predict-request"
RUN_REQUEST = "run-request"
PREDICT_RESULT = "predict-result"
RUN_RESULT = "run-result"


async def handle_predict(data, client, replicate_client, options: ReplicateOptions):
    """Create a prediction for a model version, wait for it and send the full record back"""
    ensure_dir(options.out_dir)

    await ssam_log(f"{prefix()} Running model..", client, options.log)

    try:
        request = PredictRequest.from_payload(data)
    except ValueError as e:
        await ssam_warn(f"{prefix()} {e}", client, options.log)
        return

    if request.dry_run:
        logger.info(f"{prefix()} Dry run. No request is sent to Replicate API.")
        await client.send(PREDICT_RESULT, {"output": list(options.test_output)})
        return

    try:
        # prediction record carries a lot of metadata, passed through as is
        prediction = await replicate_client.predict(request.version, request.input)
    except Exception as exc:
        logger.exception("Prediction for version %s failed", request.version)
        await ssam_warn(f"{prefix()} {exc}", client, options.log)
        return

    await ssam_log(f"{prefix()} Output generated.", client, options.log)
    await client.send(PREDICT_RESULT, prediction)

    if options.save_output:
        await export_outputs(
            output_urls(prediction.get("output")),
            client,
            options.out_dir,
            log=options.log,
            job_id=prediction.get("id"),
        )


async def handle_run(data, client, replicate_client, options: ReplicateOptions):
    """Run a model by reference; only its output is sent back"""
    ensure_dir(options.out_dir)

    await ssam_log(f"{prefix()} Running model..", client, options.log)

    try:
        request = RunRequest.from_payload(data)
    except ValueError as e:
        await ssam_warn(f"{prefix()} {e}", client, options.log)
        return

    if request.dry_run:
        logger.info(f"{prefix()} Dry run. No request is sent to Replicate API.")
        await client.send(RUN_RESULT, {"output": list(options.test_output)})
        return

    try:
        output = await replicate_client.run(request.model, request.input)
    except Exception as exc:
        logger.exception("Run of model %s failed", request.model)
        await ssam_warn(f"{prefix()} {exc}", client, options.log)
        return

    await ssam_log(f"{prefix()} Output generated.", client, options.log)
    await client.send(RUN_RESULT, output)

    if options.save_output:
        await export_outputs(output_urls(output), client, options.out_dir, log=options.log)


def register_replicate_handlers(channel, replicate_client, options: ReplicateOptions):
    """Register the predict and run handlers on a message channel"""

    async def on_predict(data, client):
        await handle_predict(data, client, replicate_client, options)

    async def on_run(data, client):
        await handle_run(data, client, replicate_client, options)

    channel.on(PREDICT_REQUEST, on_predict)
    channel.on(RUN_REQUEST, on_run)
    logger.info("Registered handlers for '%s' and '%s'", PREDICT_REQUEST, RUN_REQUEST)
